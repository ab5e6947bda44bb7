"""Typed runtime configuration for agent_workflow."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from agent_workflow.errors import ConfigurationError

logger = logging.getLogger(__name__)

API_KEY_ENV = "OPENAI_API_KEY"
API_BASE_ENV = "OPENAI_API_BASE"
MAX_TURNS_ENV = "AGENT_WORKFLOW_MAX_TURNS"
MAX_ATTEMPTS_ENV = "AGENT_WORKFLOW_MAX_ATTEMPTS"
RETRY_DELAY_ENV = "AGENT_WORKFLOW_RETRY_DELAY"
MAX_DELEGATION_DEPTH_ENV = "AGENT_WORKFLOW_MAX_DELEGATION_DEPTH"
REQUEST_TIMEOUT_ENV = "AGENT_WORKFLOW_REQUEST_TIMEOUT"

DEFAULT_MAX_TURNS: int = 8
"""Turns a single run may take before MaxTurnsExceededError."""

DEFAULT_MAX_ATTEMPTS: int = 3
"""Generate attempts per turn before the failure is absorbed into the conversation."""

DEFAULT_MAX_DELEGATION_DEPTH: int = 5
"""Nested runs a chain of delegating tools may open below the top-level run."""

DEFAULT_REQUEST_TIMEOUT: float = 120.0
"""Seconds before a provider request is abandoned."""

_ENV_PLACEHOLDER = re.compile(r"\$\{ENV:([A-Za-z0-9_]+)\}")


@dataclass(frozen=True)
class WorkflowConfig:
    """Runtime policy/config resolved once and passed explicitly to the manager."""

    max_turns: int = DEFAULT_MAX_TURNS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = 0.0
    max_delegation_depth: int = DEFAULT_MAX_DELEGATION_DEPTH
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    api_base: str | None = None

    @classmethod
    def from_env(cls) -> "WorkflowConfig":
        """Build typed config from environment variables, falling back to defaults."""
        return cls(
            max_turns=_env_number(MAX_TURNS_ENV, DEFAULT_MAX_TURNS, int, minimum=1),
            max_attempts=_env_number(MAX_ATTEMPTS_ENV, DEFAULT_MAX_ATTEMPTS, int, minimum=1),
            retry_delay=_env_number(RETRY_DELAY_ENV, 0.0, float, minimum=0),
            max_delegation_depth=_env_number(
                MAX_DELEGATION_DEPTH_ENV, DEFAULT_MAX_DELEGATION_DEPTH, int, minimum=0,
            ),
            request_timeout=_env_number(REQUEST_TIMEOUT_ENV, DEFAULT_REQUEST_TIMEOUT, float, minimum=0),
            api_base=os.environ.get(API_BASE_ENV) or None,
        )


def _env_number(name: str, default, cast, *, minimum):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; expected a number. Defaulting to %r.", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Invalid %s=%r; must be >= %r. Defaulting to %r.", name, raw, minimum, default)
        return default
    return value


# ---------------------------------------------------------------------------
# .env files and placeholders
# ---------------------------------------------------------------------------


def find_dotenv(start: str | Path | None = None) -> Path | None:
    """Return the first ``.env`` found walking up from *start* (default: cwd)."""
    directory = Path(start) if start is not None else Path.cwd()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / ".env"
        if candidate.is_file():
            return candidate
    return None


def load_dotenv_values(path: str | Path | None = None) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines from a .env file.

    Skips comments, empty lines, and lines without a key. A leading
    ``export`` and surrounding quotes are stripped. Returns an empty dict
    when no file is found.
    """
    env_path = Path(path) if path is not None else find_dotenv()
    if env_path is None or not env_path.is_file():
        return {}
    values: dict[str, str] = {}
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[7:]
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key:
            values[key] = value.strip().strip("\"'")
    return values


def lookup_env(name: str, dotenv: dict[str, str] | None = None) -> str | None:
    """Environment value for *name*, else the .env value, else None."""
    value = os.environ.get(name)
    if value:
        return value
    if dotenv is None:
        dotenv = load_dotenv_values()
    return dotenv.get(name) or None


def expand_env_placeholders(value: str | None, dotenv: dict[str, str] | None = None) -> str:
    """Replace every ``${ENV:NAME}`` in *value*; unknown names expand to ''."""
    if not value:
        return value or ""
    if _ENV_PLACEHOLDER.search(value) is None:
        return value
    if dotenv is None:
        dotenv = load_dotenv_values()
    return _ENV_PLACEHOLDER.sub(lambda m: lookup_env(m.group(1), dotenv) or "", value)


def resolve_api_key(explicit: str | None = None) -> str:
    """Return the provider API key: explicit, then environment, then .env."""
    if explicit:
        return explicit
    key = lookup_env(API_KEY_ENV)
    if not key:
        raise ConfigurationError(
            f"API key is not configured. Pass api_key, set the {API_KEY_ENV} "
            "environment variable, or provide it in a .env file."
        )
    return key

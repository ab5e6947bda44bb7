"""Tests for agent_workflow.translator: request deltas, chaining, idempotency, name mapping."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from agent_workflow.agent import AgentDescriptor
from agent_workflow.errors import TranslationError
from agent_workflow.messages import Message
from agent_workflow.tools import ToolDefinition
from agent_workflow.translator import (
    ResponsesTranslator,
    build_tool_name_map,
    parse_arguments,
    sanitize_tool_name,
)


def _translator(**overrides) -> ResponsesTranslator:
    fields = {"name": "nano-agent", "instructions": "Provide concise answers.", "model": "gpt-5-nano"}
    fields.update(overrides)
    return ResponsesTranslator(AgentDescriptor(**fields))


def _function_call(name, call_id, arguments='{}'):
    return {"type": "function_call", "name": name, "call_id": call_id, "arguments": arguments}


def _text_response(text, response_id="resp_text"):
    return {
        "id": response_id,
        "output": [{
            "type": "message",
            "role": "assistant",
            "content": [{"type": "output_text", "text": text}],
        }],
    }


def _outputs(payload):
    return [item for item in payload["input"] if item["type"] == "function_call_output"]


def _messages(payload):
    return [item for item in payload["input"] if item["type"] == "message"]


# ---------------------------------------------------------------------------
# Tool names
# ---------------------------------------------------------------------------


class TestToolNames:
    def test_sanitize(self):
        assert sanitize_tool_name("search.docs v2") == "search_docs_v2"
        assert sanitize_tool_name("ok-name_1") == "ok-name_1"
        assert sanitize_tool_name("") == "tool"

    def test_collisions_get_ordered_suffixes(self):
        mapping = build_tool_name_map(["a.b", "a/b", "a b", "a_b_2"])
        assert mapping == {
            "a_b": "a.b",
            "a_b_2": "a/b",
            "a_b_3": "a b",
            "a_b_2_2": "a_b_2",
        }

    def test_deterministic(self):
        names = ["x.y", "x:y", "z"]
        assert build_tool_name_map(names) == build_tool_name_map(names)

    def test_request_uses_sanitized_names_and_reverse_maps_calls(self):
        translator = _translator()
        tools = [ToolDefinition("search.docs", "Dotted"), ToolDefinition("search/docs", "Slashed")]
        prepared = translator.build_request([Message.from_text("user", "find it")], tools)

        assert [t["name"] for t in prepared.payload["tools"]] == ["search_docs", "search_docs_2"]
        assert prepared.payload["tools"][1]["description"] == "Slashed"

        result = translator.parse_response({
            "id": "resp_1",
            "output": [
                _function_call("search_docs_2", "call_a"),
                _function_call("search_docs", "call_b"),
            ],
        })
        assert [c.name for c in result.tool_calls] == ["search/docs", "search.docs"]

    def test_name_map_rebuilt_each_call(self):
        translator = _translator()
        translator.build_request([Message.from_text("user", "x")], [ToolDefinition("a.b", "")])
        translator.build_request([Message.from_text("user", "x")], [ToolDefinition("c.d", "")])
        assert translator.state.tool_names == {"c_d": "c.d"}


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------


class TestBuildRequest:
    def test_plain_text_request(self):
        translator = _translator()
        prepared = translator.build_request([Message.from_text("user", "Say hi")], [])
        payload = prepared.payload

        assert payload["model"] == "gpt-5-nano"
        assert payload["instructions"] == "Provide concise answers."
        assert payload["reasoning"] == {"effort": "minimal"}
        assert payload["text"] == {"verbosity": "low"}
        assert "previous_response_id" not in payload
        assert "tools" not in payload
        assert "temperature" not in payload
        assert payload["input"] == [{
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": "Say hi"}],
        }]
        assert prepared.previous_response_id is None
        assert prepared.submitted_call_ids == ()

    def test_sampling_parameters(self):
        translator = _translator(model="gpt-4.1", temperature=0.2, top_p=0.9, max_output_tokens=256)
        payload = translator.build_request([Message.from_text("user", "x")], []).payload
        assert payload["temperature"] == 0.2
        assert payload["top_p"] == 0.9
        assert payload["max_output_tokens"] == 256
        assert "reasoning" not in payload
        assert "text" not in payload

    def test_system_prompt_first(self):
        translator = _translator(system_prompt="You are terse.")
        payload = translator.build_request([Message.from_text("user", "x")], []).payload
        first = payload["input"][0]
        assert first["role"] == "system"
        assert first["content"] == [{"type": "input_text", "text": "You are terse."}]

    def test_assistant_text_sent_as_output_text(self):
        translator = _translator()
        conversation = [
            Message.from_text("user", "hi"),
            Message.from_text("assistant", "hello"),
            Message.from_text("user", "again"),
        ]
        items = _messages(translator.build_request(conversation, []).payload)
        assert [i["role"] for i in items] == ["user", "assistant", "user"]
        assert items[1]["content"][0]["type"] == "output_text"

    def test_delta_after_tool_call(self):
        translator = _translator(system_prompt="Be brief.")
        conversation = [Message.from_text("user", "What is 2+2?")]
        translator.parse_response({
            "id": "resp_1",
            "output": [
                {"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "Let me add."}]},
                _function_call("add", "call_1", '{"a": 2, "b": 2}'),
            ],
        })
        conversation += [
            Message.from_text("assistant", "Let me add."),
            Message.from_tool_result("call_1", "4"),
        ]

        prepared = translator.build_request(conversation, [ToolDefinition("add", "")])
        payload = prepared.payload

        assert payload["previous_response_id"] == "resp_1"
        assert prepared.submitted_call_ids == ("call_1",)
        # System prompt is always resent; earlier turns are already held upstream.
        assert [i["role"] for i in _messages(payload)] == ["system"]
        assert _outputs(payload) == [{"type": "function_call_output", "call_id": "call_1", "output": "4"}]

    def test_messages_after_tool_outputs_included(self):
        translator = _translator()
        translator.parse_response({"id": "resp_1", "output": [_function_call("add", "call_1")]})
        conversation = [
            Message.from_text("user", "q"),
            Message.from_tool_result("call_1", "4"),
            Message.from_text("user", "and now?"),
        ]
        payload = translator.build_request(conversation, []).payload
        assert [i["type"] for i in payload["input"]] == ["function_call_output", "message"]
        assert payload["input"][1]["content"][0]["text"] == "and now?"

    def test_commit_marks_submitted(self):
        translator = _translator()
        translator.parse_response({"id": "resp_1", "output": [_function_call("add", "call_1")]})
        prepared = translator.build_request(
            [Message.from_text("user", "q"), Message.from_tool_result("call_1", "4")], [],
        )
        translator.commit(prepared)
        assert "call_1" in translator.state.submitted_call_ids
        assert "call_1" not in translator.state.pending_links

    def test_release_drops_links_only(self):
        translator = _translator()
        translator.parse_response({"id": "resp_1", "output": [
            _function_call("a", "call_1"), _function_call("b", "call_2"),
        ]})
        translator.release(["call_1", "call_unknown"])
        assert translator.state.pending_links == {"call_2": "resp_1"}
        assert translator.state.submitted_call_ids == set()

    def test_uncommitted_outputs_resent_on_retry(self):
        translator = _translator()
        translator.parse_response({"id": "resp_1", "output": [_function_call("add", "call_1")]})
        conversation = [Message.from_text("user", "q"), Message.from_tool_result("call_1", "4")]
        first = translator.build_request(conversation, [])
        second = translator.build_request(conversation, [])
        assert first.payload == second.payload

    def test_replay_never_resubmits(self):
        translator = _translator()
        translator.parse_response({"id": "resp_1", "output": [_function_call("add", "call_1")]})
        conversation = [Message.from_text("user", "q"), Message.from_tool_result("call_1", "4")]

        translator.commit(translator.build_request(conversation, []))
        replay = translator.build_request(conversation, [])

        assert _outputs(replay.payload) == []
        assert "previous_response_id" not in replay.payload
        assert replay.submitted_call_ids == ()

    def test_duplicate_result_in_conversation_sent_once(self):
        translator = _translator()
        translator.parse_response({"id": "resp_1", "output": [_function_call("add", "call_1")]})
        conversation = [
            Message.from_text("user", "q"),
            Message.from_tool_result("call_1", "4"),
            Message.from_tool_result("call_1", "4"),
        ]
        prepared = translator.build_request(conversation, [])
        assert len(_outputs(prepared.payload)) == 1
        assert prepared.submitted_call_ids == ("call_1",)

    def test_orphan_output_is_fatal(self):
        translator = _translator()
        conversation = [Message.from_text("user", "q"), Message.from_tool_result("call_unknown", "x")]
        with pytest.raises(TranslationError, match="call_unknown"):
            translator.build_request(conversation, [])

    def test_outputs_for_two_responses_are_fatal(self):
        translator = _translator()
        translator.parse_response({"id": "resp_1", "output": [_function_call("a", "call_1")]})
        translator.parse_response({"id": "resp_2", "output": [_function_call("b", "call_2")]})
        conversation = [
            Message.from_text("user", "q"),
            Message.from_tool_result("call_1", "x"),
            Message.from_tool_result("call_2", "y"),
        ]
        with pytest.raises(TranslationError, match="more than one upstream response"):
            translator.build_request(conversation, [])


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestParseResponse:
    def test_text_only(self):
        translator = _translator()
        result = translator.parse_response(_text_response("Hello there"))
        assert result.tool_calls == ()
        assert result.assistant_message.role == "assistant"
        assert result.assistant_message.text == "Hello there"
        assert result.assistant_message.author == "nano-agent"

    def test_segments_joined_and_blank_skipped(self):
        translator = _translator()
        result = translator.parse_response({
            "id": "resp_1",
            "output": [
                {"type": "reasoning", "summary": []},
                {"type": "message", "content": [
                    {"type": "output_text", "text": "one"},
                    {"type": "output_text", "text": "  "},
                    {"type": "text", "text": "two"},
                ]},
                {"type": "message", "content": [{"type": "output_text", "text": "three"}]},
            ],
        })
        assert result.assistant_message.text == "one\ntwo\nthree"

    def test_no_output(self):
        result = _translator().parse_response({"id": "resp_1", "output": []})
        assert result.assistant_message is None
        assert result.tool_calls == ()

    def test_function_call_links_response(self):
        translator = _translator()
        result = translator.parse_response({
            "id": "resp_tool_call_1",
            "output": [_function_call("delegate", "call_1", '{"prompt": "Need assistance"}')],
        })
        call = result.tool_calls[0]
        assert (call.name, call.call_id, call.arguments) == ("delegate", "call_1", {"prompt": "Need assistance"})
        assert translator.state.pending_links == {"call_1": "resp_tool_call_1"}

    def test_literal_json_arguments(self):
        result = _translator().parse_response({
            "id": "resp_1",
            "output": [_function_call("f", "call_1", {"a": [1, 2]})],
        })
        assert result.tool_calls[0].arguments == {"a": [1, 2]}

    def test_nested_tool_call_in_message(self):
        result = _translator().parse_response({
            "id": "resp_1",
            "output": [{
                "type": "message",
                "content": [
                    {"type": "output_text", "text": "Calling."},
                    {"type": "tool_call", "name": "f", "call_id": "call_n", "arguments": "{}"},
                ],
            }],
        })
        assert result.assistant_message.text == "Calling."
        assert result.tool_calls[0].call_id == "call_n"

    def test_missing_call_id_synthesised(self):
        translator = _translator()
        result = translator.parse_response({
            "id": "resp_1",
            "output": [{"type": "function_call", "name": "f", "arguments": ""}],
        })
        call = result.tool_calls[0]
        assert call.call_id.startswith("call_")
        assert call.arguments == {}
        assert translator.state.pending_links[call.call_id] == "resp_1"

    def test_attribute_style_response(self):
        response = SimpleNamespace(
            id="resp_obj",
            output=[
                SimpleNamespace(type="function_call", name="f", call_id="call_o", arguments='{"x": 1}'),
                SimpleNamespace(type="message", content=[SimpleNamespace(type="output_text", text="hi")]),
            ],
        )
        result = _translator().parse_response(response)
        assert result.tool_calls[0].arguments == {"x": 1}
        assert result.assistant_message.text == "hi"

    def test_tool_call_without_response_id_is_fatal(self):
        with pytest.raises(TranslationError, match="no response id"):
            _translator().parse_response({"output": [_function_call("f", "call_1")]})

    def test_invalid_arguments_json_is_fatal(self):
        with pytest.raises(TranslationError, match="not valid JSON"):
            _translator().parse_response({"id": "r", "output": [_function_call("f", "call_1", "{oops")]})

    def test_malformed_output_is_fatal(self):
        with pytest.raises(TranslationError):
            _translator().parse_response({"id": "r", "output": "nope"})
        with pytest.raises(TranslationError):
            _translator().parse_response(None)

    def test_function_call_without_name_is_fatal(self):
        with pytest.raises(TranslationError, match="missing a name"):
            _translator().parse_response({"id": "r", "output": [{"type": "function_call", "call_id": "c"}]})


class TestParseArguments:
    @pytest.mark.parametrize("raw,expected", [
        (None, {}),
        ("", {}),
        ("  ", {}),
        ('{"a": 1}', {"a": 1}),
        (b'{"a": 1}', {"a": 1}),
        ({"a": 1}, {"a": 1}),
        ("[1, 2]", [1, 2]),
    ])
    def test_decodes(self, raw, expected):
        assert parse_arguments(raw) == expected

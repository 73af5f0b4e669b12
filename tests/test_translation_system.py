"""
ModelRelay - Request Translation Tests

Tests for:
- Format classification
- Message conversion between all family pairs
- System prompt, parameter and tool mapping
- Thinking block policy
"""

import copy
import json

import pytest

from modelrelay.core.errors import InvalidRequestError
from modelrelay.core.formats import APIFormat
from modelrelay.translation import convert_body, convert_request, detect_format
from modelrelay.translation.messages import convert_messages, parse_tool_arguments
from modelrelay.translation.parameters import (
    as_token_count,
    normalize_max_tokens,
    validate_parameters,
)
from modelrelay.translation.tools import ToolNormalizer, convert_tools


WEATHER_SCHEMA = {"type": "object", "properties": {"city": {"type": "string"}}}


# ============================================================
# Format Classification
# ============================================================

class TestDetectFormat:
    """Tests for detect_format."""

    def test_contents_is_google(self):
        assert detect_format({"contents": []}) == APIFormat.GOOGLE

    def test_generation_config_is_google(self):
        assert detect_format({"generationConfig": {}, "messages": []}) == APIFormat.GOOGLE

    def test_system_string_is_anthropic(self):
        body = {"system": "Be brief", "messages": [{"role": "user", "content": "Hi"}]}
        assert detect_format(body) == APIFormat.ANTHROPIC

    def test_block_content_is_anthropic(self):
        body = {"messages": [{"role": "user", "content": [{"type": "text", "text": "Hi"}]}]}
        assert detect_format(body) == APIFormat.ANTHROPIC

    def test_plain_messages_are_openai(self):
        body = {"messages": [{"role": "user", "content": "Hi"}]}
        assert detect_format(body) == APIFormat.OPENAI

    def test_non_object_is_openai(self):
        assert detect_format(["not", "a", "body"]) == APIFormat.OPENAI


# ============================================================
# OpenAI <-> Anthropic
# ============================================================

class TestOpenAIToAnthropic:
    """Tests for OpenAI -> Anthropic conversion."""

    def test_system_messages_and_parameters(self):
        """System prompt moves to `system`; stop becomes stop_sequences."""
        body = {
            "model": "smart-model",
            "messages": [
                {"role": "system", "content": "Be brief"},
                {"role": "user", "content": "Hi"},
            ],
            "max_tokens": 100,
            "stop": "END",
            "temperature": 0.5,
        }

        result = convert_body(body, APIFormat.OPENAI, APIFormat.ANTHROPIC)

        assert result == {
            "model": "smart-model",
            "system": "Be brief",
            "messages": [{"role": "user", "content": [{"type": "text", "text": "Hi"}]}],
            "max_tokens": 100,
            "stop_sequences": ["END"],
            "temperature": 0.5,
        }

    def test_multiple_system_messages_are_joined(self):
        body = {
            "messages": [
                {"role": "system", "content": "First"},
                {"role": "system", "content": [{"type": "text", "text": "Second"}]},
                {"role": "user", "content": "Hi"},
            ],
        }
        result = convert_body(body, APIFormat.OPENAI, APIFormat.ANTHROPIC)
        assert result["system"] == "First\n\nSecond"
        assert len(result["messages"]) == 1

    def test_tool_results_flush_as_separate_user_message(self):
        """Tool messages become tool_result blocks in their own user turn."""
        messages = [
            {"role": "user", "content": "q"},
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "lookup", "arguments": '{"a": 1}'},
                }],
            },
            {"role": "tool", "tool_call_id": "call_1", "content": "r1"},
            {"role": "user", "content": "thanks"},
        ]

        result = convert_messages(messages, APIFormat.OPENAI, APIFormat.ANTHROPIC)

        assert result == [
            {"role": "user", "content": [{"type": "text", "text": "q"}]},
            {"role": "assistant", "content": [
                {"type": "tool_use", "id": "call_1", "name": "lookup", "input": {"a": 1}},
            ]},
            {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "call_1", "content": "r1"},
            ]},
            {"role": "user", "content": [{"type": "text", "text": "thanks"}]},
        ]

    def test_trailing_tool_results_are_flushed(self):
        messages = [
            {"role": "tool", "tool_call_id": "call_1", "content": "a"},
            {"role": "tool", "tool_call_id": "call_2", "content": "b"},
        ]
        result = convert_messages(messages, APIFormat.OPENAI, APIFormat.ANTHROPIC)
        assert len(result) == 1
        assert [b["tool_use_id"] for b in result[0]["content"]] == ["call_1", "call_2"]

    def test_malformed_tool_arguments_drop_only_that_call(self):
        messages = [{
            "role": "assistant",
            "content": "Working on it",
            "tool_calls": [
                {"id": "bad", "type": "function", "function": {"name": "f", "arguments": "{not json"}},
                {"id": "good", "type": "function", "function": {"name": "g", "arguments": ""}},
            ],
        }]

        result = convert_messages(messages, APIFormat.OPENAI, APIFormat.ANTHROPIC)

        assert result[0]["content"] == [
            {"type": "text", "text": "Working on it"},
            {"type": "tool_use", "id": "good", "name": "g", "input": {}},
        ]

    def test_data_uri_image_becomes_base64_source(self):
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": "Look"},
                {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
            ],
        }]
        result = convert_messages(messages, APIFormat.OPENAI, APIFormat.ANTHROPIC)
        assert result[0]["content"][1] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"},
        }


class TestAnthropicToOpenAI:
    """Tests for Anthropic -> OpenAI conversion."""

    def test_tool_use_and_tool_result(self):
        body = {
            "model": "claude-sonnet-4",
            "system": [{"type": "text", "text": "Sys"}],
            "max_tokens": 256,
            "messages": [
                {"role": "user", "content": "What's the weather?"},
                {"role": "assistant", "content": [
                    {"type": "thinking", "thinking": "hmm", "signature": "sig"},
                    {"type": "text", "text": "Checking."},
                    {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Paris"}},
                ]},
                {"role": "user", "content": [
                    {"type": "tool_result", "tool_use_id": "toolu_1", "content": "Sunny"},
                ]},
            ],
            "tools": [{"name": "get_weather", "description": "Weather", "input_schema": WEATHER_SCHEMA}],
            "tool_choice": {"type": "auto"},
        }

        result = convert_body(body, APIFormat.ANTHROPIC, APIFormat.OPENAI)

        assert result["messages"] == [
            {"role": "system", "content": "Sys"},
            {"role": "user", "content": "What's the weather?"},
            {
                "role": "assistant",
                "content": "Checking.",
                "tool_calls": [{
                    "id": "toolu_1",
                    "type": "function",
                    "function": {"name": "get_weather", "arguments": json.dumps({"city": "Paris"})},
                }],
            },
            {"role": "user", "content": "[Tool Result (id: toolu_1)]\nSunny"},
        ]
        assert result["tools"] == [{
            "type": "function",
            "function": {"name": "get_weather", "description": "Weather", "parameters": WEATHER_SCHEMA},
        }]
        assert "tool_choice" not in result
        assert "system" not in result
        assert result["max_tokens"] == 256

    def test_system_and_text_blocks_flattened(self):
        body = {
            "model": "claude-3",
            "system": "Be terse",
            "messages": [{"role": "user", "content": [{"type": "text", "text": "hi"}]}],
        }

        result = convert_body(body, None, APIFormat.OPENAI)

        assert result == {
            "model": "claude-3",
            "messages": [
                {"role": "system", "content": "Be terse"},
                {"role": "user", "content": "hi"},
            ],
        }

    def test_tool_only_assistant_has_null_content(self):
        messages = [{"role": "assistant", "content": [
            {"type": "tool_use", "id": "t1", "name": "f", "input": None},
        ]}]
        result = convert_messages(messages, APIFormat.ANTHROPIC, APIFormat.OPENAI)
        assert result[0]["content"] is None
        assert result[0]["tool_calls"][0]["function"]["arguments"] == "{}"

    def test_text_round_trip(self):
        """OpenAI -> Anthropic -> OpenAI preserves a text-only conversation."""
        body = {
            "model": "smart-model",
            "messages": [
                {"role": "system", "content": "S"},
                {"role": "user", "content": "Hello"},
                {"role": "assistant", "content": "Hi there"},
            ],
        }

        anthropic = convert_body(body, APIFormat.OPENAI, APIFormat.ANTHROPIC)
        back = convert_body(anthropic, APIFormat.ANTHROPIC, APIFormat.OPENAI)

        assert back == body


# ============================================================
# Google
# ============================================================

class TestGoogleConversion:
    """Tests for conversions to and from Google contents."""

    def test_anthropic_to_google(self):
        body = {
            "model": "gemini-2.5-pro",
            "system": "Sys",
            "max_tokens": 50,
            "temperature": 0.3,
            "top_p": 0.9,
            "stop_sequences": ["X"],
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": [
                    {"type": "tool_use", "id": "t1", "name": "lookup", "input": {"q": "a"}},
                ]},
                {"role": "user", "content": [
                    {"type": "tool_result", "tool_use_id": "t1", "content": [{"type": "text", "text": "found"}]},
                ]},
            ],
        }

        result = convert_body(body, APIFormat.ANTHROPIC, APIFormat.GOOGLE)

        assert result == {
            "model": "gemini-2.5-pro",
            "system_instruction": {"parts": [{"text": "Sys"}]},
            "contents": [
                {"role": "user", "parts": [{"text": "Hi"}]},
                {"role": "model", "parts": [{"functionCall": {"name": "lookup", "args": {"q": "a"}}}]},
                {"role": "user", "parts": [
                    {"functionResponse": {"name": "lookup", "response": {"content": "found"}}},
                ]},
            ],
            "generationConfig": {
                "maxOutputTokens": 50,
                "temperature": 0.3,
                "topP": 0.9,
                "stopSequences": ["X"],
            },
        }

    def test_openai_tool_response_resolves_function_name(self):
        messages = [
            {"role": "assistant", "content": None, "tool_calls": [{
                "id": "call_9", "type": "function",
                "function": {"name": "lookup", "arguments": "{}"},
            }]},
            {"role": "tool", "tool_call_id": "call_9", "content": "done"},
        ]

        result = convert_messages(messages, APIFormat.OPENAI, APIFormat.GOOGLE)

        assert result == [
            {"role": "model", "parts": [{"functionCall": {"name": "lookup", "args": {}}}]},
            {"role": "user", "parts": [
                {"functionResponse": {"name": "lookup", "response": {"content": "done"}}},
            ]},
        ]

    def test_google_to_openai_pairs_calls_and_responses(self):
        body = {
            "systemInstruction": {"parts": [{"text": "Sys"}]},
            "generationConfig": {"maxOutputTokens": 64, "temperature": 0.2},
            "contents": [
                {"role": "user", "parts": [{"text": "Hi"}]},
                {"role": "model", "parts": [{"functionCall": {"name": "lookup", "args": {"q": "a"}}}]},
                {"role": "user", "parts": [
                    {"functionResponse": {"name": "lookup", "response": {"content": "found"}}},
                ]},
            ],
        }

        result = convert_body(body, APIFormat.GOOGLE, APIFormat.OPENAI)
        messages = result["messages"]

        assert messages[0] == {"role": "system", "content": "Sys"}
        assert messages[1] == {"role": "user", "content": "Hi"}
        assert messages[2]["role"] == "assistant"
        assert messages[2]["content"] is None
        call = messages[2]["tool_calls"][0]
        assert call["id"].startswith("call_")
        assert json.loads(call["function"]["arguments"]) == {"q": "a"}
        assert messages[3] == {"role": "tool", "tool_call_id": call["id"], "content": "found"}

        assert result["max_tokens"] == 64
        assert result["temperature"] == 0.2
        assert "generationConfig" not in result
        assert "contents" not in result

    def test_google_to_anthropic_keeps_tool_pairing(self):
        contents = [
            {"role": "model", "parts": [{"functionCall": {"name": "f", "args": {}}}]},
            {"role": "user", "parts": [{"functionResponse": {"name": "f", "response": {"ok": True}}}]},
        ]

        result = convert_messages(contents, APIFormat.GOOGLE, APIFormat.ANTHROPIC)

        tool_use = result[0]["content"][0]
        tool_result = result[1]["content"][0]
        assert tool_use["type"] == "tool_use"
        assert tool_result["tool_use_id"] == tool_use["id"]
        assert json.loads(tool_result["content"]) == {"ok": True}


# ============================================================
# Thinking policy
# ============================================================

class TestThinkingPolicy:
    """Unsigned thinking never reaches a non-Anthropic target."""

    @pytest.fixture
    def thinking_messages(self):
        return [{"role": "assistant", "content": [
            {"type": "thinking", "thinking": "unsigned"},
            {"type": "thinking", "thinking": "signed", "signature": "sig-1"},
            {"type": "text", "text": "ok"},
        ]}]

    def test_openai_target_strips_unsigned(self, thinking_messages):
        result = convert_body({"messages": thinking_messages}, APIFormat.OPENAI, APIFormat.OPENAI)
        assert result["messages"][0]["content"] == [
            {"type": "thinking", "thinking": "signed", "signature": "sig-1"},
            {"type": "text", "text": "ok"},
        ]

    def test_anthropic_target_keeps_everything(self, thinking_messages):
        result = convert_body({"messages": thinking_messages}, APIFormat.ANTHROPIC, APIFormat.ANTHROPIC)
        assert result["messages"] == thinking_messages

    def test_google_target_keeps_only_signed_thoughts(self, thinking_messages):
        result = convert_body({"messages": thinking_messages}, APIFormat.ANTHROPIC, APIFormat.GOOGLE)
        assert result["contents"] == [{"role": "model", "parts": [
            {"text": "signed", "thought": True, "thoughtSignature": "sig-1"},
            {"text": "ok"},
        ]}]

    def test_google_unsigned_thought_parts_dropped(self):
        body = {"contents": [{"role": "model", "parts": [
            {"text": "idea", "thought": True},
            {"text": "answer"},
        ]}]}
        result = convert_body(body, APIFormat.GOOGLE, APIFormat.GOOGLE)
        assert result["contents"][0]["parts"] == [{"text": "answer"}]


# ============================================================
# Parameters
# ============================================================

class TestParameters:
    """Tests for parameter normalization and validation."""

    @pytest.mark.parametrize("value,expected", [
        (100, 100),
        (12.9, 12),
        (1, 1),
        (0, None),
        (-5, None),
        (True, None),
        ("100", None),
        (float("inf"), None),
    ])
    def test_as_token_count(self, value, expected):
        assert as_token_count(value) == expected

    def test_max_completion_tokens_renamed(self):
        body = {"max_completion_tokens": 12.9}
        normalize_max_tokens(body, APIFormat.ANTHROPIC)
        assert body == {"max_tokens": 12}

    def test_out_of_range_values_dropped(self):
        body = {
            "temperature": 3,
            "top_p": 0.5,
            "top_k": 0,
            "generationConfig": {"topP": 1.5, "topK": 5},
        }
        assert validate_parameters(body) == {"top_p": 0.5, "generationConfig": {"topK": 5}}

    def test_same_family_uses_canonical_max_tokens(self):
        body = {"messages": [], "max_completion_tokens": 10, "stop": ["x"]}
        result = convert_body(body, APIFormat.OPENAI, APIFormat.OPENAI)
        assert result == {"messages": [], "max_tokens": 10, "stop": ["x"]}

    def test_same_family_anthropic_renames_stop(self):
        body = {"messages": [], "max_tokens": 64, "stop": ["X"]}
        result = convert_body(body, APIFormat.ANTHROPIC, APIFormat.ANTHROPIC)
        assert result == {"messages": [], "max_tokens": 64, "stop_sequences": ["X"]}

    def test_same_family_provider_pair_drops_foreign_keys(self):
        body = {
            "messages": [{"role": "user", "content": "Hi"}],
            "system_instruction": {"parts": [{"text": "S"}]},
            "generationConfig": {"temperature": 0.2},
        }

        result = convert_request(body, "codex", "github-copilot")

        assert result == {"messages": [{"role": "user", "content": "Hi"}], "temperature": 0.2}

    def test_same_family_google_moves_parameters_into_generation_config(self):
        body = {"contents": [], "maxOutputTokens": 32, "temperature": 0.5}
        result = convert_body(body, APIFormat.GOOGLE, APIFormat.GOOGLE)
        assert result == {"contents": [], "generationConfig": {"maxOutputTokens": 32, "temperature": 0.5}}


# ============================================================
# Tools
# ============================================================

class TestTools:
    """Tests for tool declaration conversion."""

    def test_google_tools_to_anthropic(self):
        body = {"tools": [{"functionDeclarations": [
            {"name": "get_weather", "description": "Weather", "parameters": WEATHER_SCHEMA},
        ]}]}
        convert_tools(body, APIFormat.GOOGLE, APIFormat.ANTHROPIC)
        assert body == {"tools": [
            {"name": "get_weather", "description": "Weather", "input_schema": WEATHER_SCHEMA},
        ]}

    def test_openai_tools_to_google(self):
        body = {
            "tools": [{"type": "function", "function": {"name": "f", "parameters": WEATHER_SCHEMA}}],
            "functions": [{"name": "f"}, {"name": "g"}],
            "tool_choice": "auto",
        }
        convert_tools(body, APIFormat.OPENAI, APIFormat.GOOGLE)
        assert body == {"functionDeclarations": [
            {"name": "f", "description": "", "parameters": WEATHER_SCHEMA},
            {"name": "g", "description": "", "parameters": {"type": "object", "properties": {}}},
        ]}

    def test_nameless_declarations_are_skipped(self):
        declarations = ToolNormalizer.extract({"tools": [{"description": "no name"}]})
        assert declarations == []


# ============================================================
# Entry points
# ============================================================

class TestConvertBody:
    """Tests for convert_body / convert_request."""

    def test_input_not_mutated(self):
        body = {
            "model": "m",
            "system": "Sys",
            "messages": [{"role": "user", "content": [{"type": "text", "text": "Hi"}]}],
            "max_tokens": 10,
        }
        snapshot = copy.deepcopy(body)
        convert_body(body, APIFormat.ANTHROPIC, APIFormat.GOOGLE)
        assert body == snapshot

    def test_non_object_body_rejected(self):
        with pytest.raises(InvalidRequestError):
            convert_body(["nope"], APIFormat.OPENAI, APIFormat.ANTHROPIC)

    def test_unknown_source_is_classified(self):
        body = {"system": "Sys", "messages": [{"role": "user", "content": "Hi"}]}
        result = convert_request(body, None, "github-copilot")
        assert result["messages"][0] == {"role": "system", "content": "Sys"}

    def test_provider_ids_resolve_to_families(self):
        body = {"messages": [{"role": "user", "content": "Hi"}], "max_tokens": 5}
        result = convert_request(body, "codex", "gemini-cli")
        assert result["contents"] == [{"role": "user", "parts": [{"text": "Hi"}]}]
        assert result["generationConfig"] == {"maxOutputTokens": 5}

    @pytest.mark.parametrize("arguments,expected", [
        (None, {}),
        ("", {}),
        ("  ", {}),
        ('{"a": 1}', {"a": 1}),
        ({"a": 1}, {"a": 1}),
        ("[1, 2]", None),
        ("{oops", None),
    ])
    def test_parse_tool_arguments(self, arguments, expected):
        assert parse_tool_arguments(arguments) == expected

"""
ModelRelay - Message Conversion

Converts message arrays between format families. OpenAI and Anthropic
carry a `messages` array; Google carries `contents` of {role, parts}.

Every pair of families has a converter in CONVERTERS. Google -> Anthropic
goes through OpenAI, so tool results bound to synthesized call ids stay
paired with their calls.
"""

import json
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.formats import APIFormat
from ..observability.logging import get_logger
from .content import (
    anthropic_content_to_openai,
    anthropic_image_to_openai,
    block_to_google_part,
    content_text,
    content_to_google_parts,
    google_parts_to_openai_content,
    openai_content_to_anthropic,
)

logger = get_logger(__name__)

Messages = List[Dict[str, Any]]


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def new_tool_use_id() -> str:
    return f"toolu_{uuid.uuid4().hex[:24]}"


def parse_tool_arguments(arguments: Any) -> Optional[Dict[str, Any]]:
    """
    Parse OpenAI tool-call arguments into an object.

    Empty arguments mean no arguments. Returns None for malformed JSON or
    JSON that is not an object.
    """
    if arguments is None:
        return {}
    if isinstance(arguments, dict):
        return arguments
    if not isinstance(arguments, str):
        return None
    if not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _openai_tool_calls(message: Dict[str, Any]) -> List[Tuple[Optional[str], str, Dict[str, Any]]]:
    """Extract (id, name, args) from an assistant message, skipping unusable calls."""
    calls = []
    tool_calls = message.get("tool_calls")
    if not isinstance(tool_calls, list):
        return calls

    for call in tool_calls:
        if not isinstance(call, dict) or not isinstance(call.get("function"), dict):
            continue
        function = call["function"]
        name = function.get("name")
        if not isinstance(name, str) or not name:
            logger.warning("Skipping tool call without a function name", tool_call_id=call.get("id"))
            continue
        args = parse_tool_arguments(function.get("arguments"))
        if args is None:
            logger.warning(
                "Skipping tool call with malformed arguments",
                tool_name=name,
                tool_call_id=call.get("id"),
            )
            continue
        calls.append((call.get("id") or None, name, args))
    return calls


# ============================================================
# Anthropic -> OpenAI
# ============================================================

def _anthropic_assistant_to_openai(message: Dict[str, Any]) -> Dict[str, Any]:
    converted = dict(message)
    content = message.get("content")
    if not isinstance(content, list):
        return converted

    text_parts: List[str] = []
    tool_calls: List[Dict[str, Any]] = []

    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            if isinstance(block.get("text"), str):
                text_parts.append(block["text"])
        elif block_type == "tool_use":
            name = block.get("name")
            if not isinstance(name, str) or not name:
                logger.warning("Skipping tool_use block without a name", tool_use_id=block.get("id"))
                continue
            tool_input = block.get("input")
            tool_calls.append({
                "id": block.get("id") or new_call_id(),
                "type": "function",
                "function": {
                    "name": name,
                    "arguments": json.dumps(tool_input if tool_input is not None else {}),
                },
            })
        elif block_type == "thinking":
            continue
        elif isinstance(block.get("text"), str):
            text_parts.append(block["text"])

    if text_parts:
        converted["content"] = "\n".join(text_parts)
    else:
        converted["content"] = None if tool_calls else ""

    if tool_calls:
        converted["tool_calls"] = tool_calls

    return converted


def _anthropic_user_to_openai(message: Dict[str, Any]) -> Dict[str, Any]:
    content = message.get("content")
    if not isinstance(content, list):
        return dict(message)

    text_parts: List[str] = []
    images: List[Dict[str, Any]] = []

    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            if isinstance(block.get("text"), str):
                text_parts.append(block["text"])
        elif block_type == "tool_result":
            tool_use_id = block.get("tool_use_id")
            if tool_use_id:
                result_text = content_text(block.get("content"))
                text_parts.append(f"[Tool Result (id: {tool_use_id})]\n{result_text}")
        elif block_type == "image":
            image = anthropic_image_to_openai(block)
            if image:
                images.append(image)
        elif block_type == "thinking":
            continue
        elif isinstance(block.get("text"), str):
            text_parts.append(block["text"])

    text = "\n\n".join(text_parts)
    if not images:
        return {"role": "user", "content": text}

    blocks: List[Dict[str, Any]] = [{"type": "text", "text": text}] if text else []
    return {"role": "user", "content": blocks + images}


def anthropic_to_openai(messages: Messages) -> Messages:
    """Convert Anthropic messages to OpenAI format (tool_use -> tool_calls)."""
    result: Messages = []

    for message in messages:
        if not isinstance(message, dict) or not message.get("role"):
            result.append(message)
            continue

        role = message["role"]
        if role == "assistant":
            result.append(_anthropic_assistant_to_openai(message))
        elif role == "user":
            result.append(_anthropic_user_to_openai(message))
        else:
            converted = dict(message)
            if "content" in message:
                converted["content"] = anthropic_content_to_openai(message["content"])
            result.append(converted)

    return result


# ============================================================
# OpenAI -> Anthropic
# ============================================================

def _openai_assistant_to_anthropic(message: Dict[str, Any]) -> Dict[str, Any]:
    blocks: List[Dict[str, Any]] = []

    content = message.get("content")
    if isinstance(content, str):
        if content:
            blocks.append({"type": "text", "text": content})
    elif isinstance(content, list):
        blocks.extend(openai_content_to_anthropic(content))

    for call_id, name, args in _openai_tool_calls(message):
        blocks.append({
            "type": "tool_use",
            "id": call_id or new_tool_use_id(),
            "name": name,
            "input": args,
        })

    return {"role": "assistant", "content": blocks}


def openai_to_anthropic(messages: Messages) -> Messages:
    """
    Convert OpenAI messages to Anthropic format.

    `role: tool` messages are buffered as tool_result blocks and flushed
    as one synthesized user message before the next non-tool message, or
    at the end of the list.
    """
    result: Messages = []
    pending: List[Dict[str, Any]] = []

    for message in messages:
        if not isinstance(message, dict) or not message.get("role"):
            result.append(message)
            continue

        role = message["role"]

        if role == "tool":
            tool_call_id = message.get("tool_call_id")
            if not tool_call_id:
                logger.warning("Dropping tool message without tool_call_id")
                continue
            pending.append({
                "type": "tool_result",
                "tool_use_id": tool_call_id,
                "content": content_text(message.get("content")),
            })
            continue

        if pending:
            result.append({"role": "user", "content": pending})
            pending = []

        if role == "assistant":
            result.append(_openai_assistant_to_anthropic(message))
        else:
            result.append({"role": role, "content": openai_content_to_anthropic(message.get("content"))})

    if pending:
        result.append({"role": "user", "content": pending})

    return result


# ============================================================
# OpenAI / Anthropic -> Google
# ============================================================

def _function_response_part(name: str, content: Any) -> Dict[str, Any]:
    return {"functionResponse": {"name": name, "response": {"content": content_text(content)}}}


def openai_to_google(messages: Messages) -> Messages:
    """Convert OpenAI messages to Google contents."""
    contents: Messages = []
    call_names: Dict[str, str] = {}
    pending: List[Dict[str, Any]] = []

    for message in messages:
        if not isinstance(message, dict):
            continue
        role = message.get("role")

        if role == "tool":
            call_id = message.get("tool_call_id") or ""
            pending.append(_function_response_part(call_names.get(call_id, call_id), message.get("content")))
            continue

        parts = content_to_google_parts(message.get("content"))

        if role == "assistant":
            if pending:
                contents.append({"role": "user", "parts": pending})
                pending = []
            for call_id, name, args in _openai_tool_calls(message):
                if call_id:
                    call_names[call_id] = name
                parts.append({"functionCall": {"name": name, "args": args}})
            if parts:
                contents.append({"role": "model", "parts": parts})
            continue

        if pending:
            parts = pending + parts
            pending = []
        if parts:
            contents.append({"role": "user", "parts": parts})

    if pending:
        contents.append({"role": "user", "parts": pending})

    return contents


def anthropic_to_google(messages: Messages) -> Messages:
    """Convert Anthropic messages to Google contents."""
    contents: Messages = []
    call_names: Dict[str, str] = {}

    for message in messages:
        if not isinstance(message, dict):
            continue
        role = "model" if message.get("role") == "assistant" else "user"
        content = message.get("content")

        parts: List[Dict[str, Any]] = []
        if isinstance(content, list):
            for block in content:
                block_type = block.get("type") if isinstance(block, dict) else None
                if block_type == "tool_use":
                    name = block.get("name")
                    if not name:
                        continue
                    if block.get("id"):
                        call_names[block["id"]] = name
                    parts.append({"functionCall": {"name": name, "args": block.get("input") or {}}})
                elif block_type == "tool_result":
                    tool_use_id = block.get("tool_use_id") or ""
                    parts.append(_function_response_part(
                        call_names.get(tool_use_id, tool_use_id), block.get("content")
                    ))
                else:
                    part = block_to_google_part(block)
                    if part is not None:
                        parts.append(part)
        else:
            parts = content_to_google_parts(content)

        if parts:
            contents.append({"role": role, "parts": parts})

    return contents


# ============================================================
# Google -> OpenAI / Anthropic
# ============================================================

def _function_response_text(response: Any) -> str:
    if isinstance(response, dict) and set(response) == {"content"} and isinstance(response["content"], str):
        return response["content"]
    return json.dumps(response if response is not None else {})


def google_to_openai(contents: Messages) -> Messages:
    """
    Convert Google contents to OpenAI messages.

    functionCall parts get synthesized call ids; the matching
    functionResponse parts (by function name, in order) become
    `role: tool` messages bound to those ids.
    """
    result: Messages = []
    open_calls: Dict[str, List[str]] = {}

    for item in contents:
        if not isinstance(item, dict):
            continue
        parts = item.get("parts")
        if not isinstance(parts, list):
            parts = []
        parts = [p for p in parts if isinstance(p, dict)]

        if item.get("role") == "model":
            tool_calls = []
            for part in parts:
                call = part.get("functionCall")
                if not isinstance(call, dict) or not call.get("name"):
                    continue
                call_id = call.get("id") or new_call_id()
                open_calls.setdefault(call["name"], []).append(call_id)
                tool_calls.append({
                    "id": call_id,
                    "type": "function",
                    "function": {"name": call["name"], "arguments": json.dumps(call.get("args") or {})},
                })

            content = google_parts_to_openai_content(parts)
            message: Dict[str, Any] = {"role": "assistant", "content": content}
            if tool_calls:
                if not content:
                    message["content"] = None
                message["tool_calls"] = tool_calls
            result.append(message)
            continue

        other_parts = []
        for part in parts:
            response = part.get("functionResponse")
            if not isinstance(response, dict):
                if "functionCall" not in part:
                    other_parts.append(part)
                continue
            name = response.get("name", "")
            waiting = open_calls.get(name)
            call_id = response.get("id") or (waiting.pop(0) if waiting else new_call_id())
            result.append({
                "role": "tool",
                "tool_call_id": call_id,
                "content": _function_response_text(response.get("response")),
            })

        if other_parts or not parts:
            result.append({"role": "user", "content": google_parts_to_openai_content(other_parts)})

    return result


def google_to_anthropic(contents: Messages) -> Messages:
    return openai_to_anthropic(google_to_openai(contents))


# ============================================================
# Dispatch
# ============================================================

CONVERTERS: Dict[Tuple[APIFormat, APIFormat], Callable[[Messages], Messages]] = {
    (APIFormat.ANTHROPIC, APIFormat.OPENAI): anthropic_to_openai,
    (APIFormat.OPENAI, APIFormat.ANTHROPIC): openai_to_anthropic,
    (APIFormat.OPENAI, APIFormat.GOOGLE): openai_to_google,
    (APIFormat.ANTHROPIC, APIFormat.GOOGLE): anthropic_to_google,
    (APIFormat.GOOGLE, APIFormat.OPENAI): google_to_openai,
    (APIFormat.GOOGLE, APIFormat.ANTHROPIC): google_to_anthropic,
}


def messages_key(api_format: APIFormat) -> str:
    """Body key holding the conversation for a format family."""
    return "contents" if api_format == APIFormat.GOOGLE else "messages"


def convert_messages(messages: Messages, source: APIFormat, target: APIFormat) -> Messages:
    """Convert a message array from one family to another. Same family is a no-op."""
    if source == target:
        return messages
    return CONVERTERS[(source, target)](messages)

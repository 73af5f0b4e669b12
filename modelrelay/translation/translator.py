"""
ModelRelay - Request Translator

Rewrites a request body from one format family into another.

Pipeline:
1. System prompt moved from the source slot to the target slot
2. Messages converted (messages <-> contents)
3. Generation parameters renamed
4. Tool declarations re-emitted
5. Unsigned thinking blocks stripped (non-Anthropic targets)
6. Out-of-range sampling parameters dropped
7. Keys that belong to another family removed

The input body is never mutated.
"""

import copy
from typing import Any, Dict, Optional, Union

from ..core.errors import InvalidRequestError
from ..core.formats import APIFormat, Provider, get_api_format
from ..observability.logging import get_logger
from .content import content_text, strip_unsigned_thinking
from .detector import detect_format
from .messages import convert_messages, messages_key
from .parameters import normalize_parameters, validate_parameters
from .tools import convert_tools

logger = get_logger(__name__)

GOOGLE_SYSTEM_KEYS = ("system_instruction", "systemInstruction")

# Top-level keys removed after a family change, per target.
FOREIGN_KEYS: Dict[APIFormat, tuple] = {
    APIFormat.OPENAI: (
        "system", "system_instruction", "systemInstruction", "generationConfig",
        "contents", "functionDeclarations", "stop_sequences", "stopSequences",
        "tool_config", "toolConfig", "safetySettings", "thinking",
    ),
    APIFormat.ANTHROPIC: (
        "system_instruction", "systemInstruction", "generationConfig", "contents",
        "functionDeclarations", "tool_config", "toolConfig", "safetySettings",
        "functions", "function_call", "stop", "max_completion_tokens",
        "presence_penalty", "frequency_penalty", "logit_bias", "response_format", "n",
    ),
    APIFormat.GOOGLE: (
        "system", "messages", "max_tokens", "max_completion_tokens", "maxTokens",
        "temperature", "top_p", "top_k", "topP", "topK", "stop", "stop_sequences",
        "stopSequences", "functions", "function_call", "tool_choice", "thinking",
        "presence_penalty", "frequency_penalty",
    ),
}


# ============================================================
# System prompt
# ============================================================

def _first_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and isinstance(block.get("text"), str):
                return block["text"]
    return ""


def extract_system(body: Dict[str, Any], source: APIFormat) -> Optional[str]:
    """Remove the system prompt from its source slot and return its text."""
    if source == APIFormat.ANTHROPIC:
        system = body.pop("system", None)
        text = content_text(system)
        return text or None

    if source == APIFormat.GOOGLE:
        text = ""
        for key in GOOGLE_SYSTEM_KEYS:
            instruction = body.pop(key, None)
            if text or not isinstance(instruction, dict):
                continue
            parts = instruction.get("parts")
            if isinstance(parts, list) and parts and isinstance(parts[0], dict):
                text = parts[0].get("text") or ""
        return text or None

    messages = body.get("messages")
    if not isinstance(messages, list):
        return None

    texts = []
    remaining = []
    for message in messages:
        if isinstance(message, dict) and message.get("role") == "system":
            text = _first_text(message.get("content"))
            if text:
                texts.append(text)
        else:
            remaining.append(message)

    body["messages"] = remaining
    return "\n\n".join(texts) or None


def apply_system(body: Dict[str, Any], text: str, target: APIFormat) -> None:
    """Write a system prompt into the target family's slot."""
    if target == APIFormat.ANTHROPIC:
        body["system"] = text
    elif target == APIFormat.GOOGLE:
        body["system_instruction"] = {"parts": [{"text": text}]}
    else:
        messages = body.get("messages")
        if not isinstance(messages, list):
            messages = []
        body["messages"] = [{"role": "system", "content": text}] + messages


# ============================================================
# Thinking policy
# ============================================================

def apply_thinking_policy(body: Dict[str, Any], target: APIFormat) -> None:
    """
    Strip thinking content the target cannot verify.

    Thinking blocks without a signature are removed; Google thought parts
    without a thoughtSignature likewise.
    """
    if target == APIFormat.ANTHROPIC:
        return

    if target == APIFormat.GOOGLE:
        for item in body.get("contents") or []:
            if isinstance(item, dict) and isinstance(item.get("parts"), list):
                item["parts"] = [
                    part for part in item["parts"]
                    if not (isinstance(part, dict) and part.get("thought") and not part.get("thoughtSignature"))
                ]
        return

    for message in body.get("messages") or []:
        if isinstance(message, dict) and isinstance(message.get("content"), list):
            message["content"] = strip_unsigned_thinking(message["content"])


def remove_foreign_keys(body: Dict[str, Any], target: APIFormat) -> None:
    for key in FOREIGN_KEYS[target]:
        body.pop(key, None)


# ============================================================
# Entry points
# ============================================================

def convert_body(
    body: Dict[str, Any],
    source_format: Optional[APIFormat],
    target_format: APIFormat,
) -> Dict[str, Any]:
    """
    Convert a request body to the target format family.

    Args:
        body: Request body; not modified
        source_format: Family of the body, or None to classify it
        target_format: Family the target backend speaks

    Returns:
        A new request body

    Raises:
        InvalidRequestError: If the body is not a JSON object
    """
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")

    result = copy.deepcopy(body)
    source = source_format or detect_format(result)
    target = target_format

    if source != target:
        system = extract_system(result, source)

        messages = result.pop(messages_key(source), None)
        if isinstance(messages, list):
            result[messages_key(target)] = convert_messages(messages, source, target)

        if system:
            apply_system(result, system, target)

    normalize_parameters(result, target)
    convert_tools(result, source, target)
    apply_thinking_policy(result, target)
    validate_parameters(result)
    remove_foreign_keys(result, target)

    if source != target:
        logger.debug(
            "Translated request",
            source_format=source.value,
            target_format=target.value,
        )

    return result


def convert_request(
    body: Dict[str, Any],
    source_provider: Union[Provider, str, None],
    target_provider: Union[Provider, str],
) -> Dict[str, Any]:
    """Convert a request body between providers. An unknown source is classified."""
    source_format = get_api_format(source_provider) if source_provider else None
    return convert_body(body, source_format, get_api_format(target_provider))

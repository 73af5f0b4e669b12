"""
ModelRelay - Format Classifier

Infers the format family of a request body whose origin provider is
unknown. When the source provider is known, use get_api_format() instead.
"""

from typing import Any

from ..core.formats import APIFormat

ANTHROPIC_BLOCK_TYPES = frozenset({"tool_use", "tool_result", "thinking"})


def detect_format(body: Any) -> APIFormat:
    """
    Detect the API format from request body structure.

    Priority order:
    1. `contents` or `generationConfig` present -> GOOGLE
    2. non-empty string `system`, or first message content is a list -> ANTHROPIC
    3. any message content holds a tool_use/tool_result/thinking block -> ANTHROPIC
    4. otherwise -> OPENAI
    """
    if not isinstance(body, dict):
        return APIFormat.OPENAI

    if "contents" in body or "generationConfig" in body:
        return APIFormat.GOOGLE

    system = body.get("system")
    if isinstance(system, str) and system:
        return APIFormat.ANTHROPIC

    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        return APIFormat.OPENAI

    first = messages[0]
    if isinstance(first, dict) and isinstance(first.get("content"), list):
        return APIFormat.ANTHROPIC

    for message in messages:
        if not isinstance(message, dict):
            continue
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if isinstance(block, dict) and block.get("type") in ANTHROPIC_BLOCK_TYPES:
                return APIFormat.ANTHROPIC

    return APIFormat.OPENAI

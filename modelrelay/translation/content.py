"""
ModelRelay - Content Block Conversion

Converts a single message's content between the three families:
- OpenAI: string, or array of {"type": "text"} / {"type": "image_url"} blocks
- Anthropic: array of text/image/tool_use/tool_result/thinking blocks
- Google: array of parts ({"text"}, {"inlineData"}, {"fileData"}, ...)
"""

import mimetypes
import re
from typing import Any, Dict, List, Optional, Tuple

_DATA_URI = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)


def parse_data_uri(url: str) -> Optional[Tuple[str, str]]:
    """Split a base64 data-URI into (media_type, data)."""
    match = _DATA_URI.match(url)
    if not match:
        return None
    return match.group(1), match.group(2)


def build_data_uri(media_type: str, data: str) -> str:
    return f"data:{media_type};base64,{data}"


def guess_media_type(url: str, default: str = "image/jpeg") -> str:
    media_type, _ = mimetypes.guess_type(url)
    return media_type or default


def is_signed_thinking(block: Dict[str, Any]) -> bool:
    """A thinking block is forwardable only when it carries a non-empty signature."""
    signature = block.get("signature")
    return isinstance(signature, str) and len(signature) > 0


def strip_unsigned_thinking(content: Any) -> Any:
    """Drop thinking blocks without a signature; non-list content is returned as-is."""
    if not isinstance(content, list):
        return content
    return [
        block for block in content
        if not (isinstance(block, dict) and block.get("type") == "thinking")
        or is_signed_thinking(block)
    ]


def content_text(content: Any, separator: str = "\n") -> str:
    """Flatten string or block-array content to plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for block in content:
            if isinstance(block, str):
                texts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str) and block["text"]:
                texts.append(block["text"])
        return separator.join(texts)
    return str(content)


# ============================================================
# Anthropic <-> OpenAI
# ============================================================

def anthropic_image_to_openai(block: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Anthropic image block -> OpenAI image_url block."""
    source = block.get("source")
    if not isinstance(source, dict):
        return None

    if source.get("type") == "url" and isinstance(source.get("url"), str):
        return {"type": "image_url", "image_url": {"url": source["url"]}}

    media_type = source.get("media_type")
    data = source.get("data")
    if media_type and data:
        return {"type": "image_url", "image_url": {"url": build_data_uri(media_type, data)}}
    return None


def openai_image_to_anthropic(block: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """OpenAI image_url block -> Anthropic image block."""
    image_url = block.get("image_url")
    url = image_url.get("url") if isinstance(image_url, dict) else image_url
    if not isinstance(url, str) or not url:
        return None

    if url.startswith("data:"):
        parsed = parse_data_uri(url)
        if parsed:
            media_type, data = parsed
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": data},
            }

    return {"type": "image", "source": {"type": "url", "url": url}}


def anthropic_content_to_openai(content: Any) -> Any:
    """
    Convert Anthropic content blocks to OpenAI content.

    Text-only content collapses to a newline-joined string. Otherwise an
    array is emitted with one merged text block first, followed by the
    non-text blocks. Thinking blocks are dropped.
    """
    if not isinstance(content, list):
        return content

    text_parts: List[str] = []
    non_text_blocks: List[Dict[str, Any]] = []
    has_non_text = False

    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if not block_type:
            continue

        if block_type == "text":
            if isinstance(block.get("text"), str):
                text_parts.append(block["text"])
        elif block_type == "thinking":
            continue
        elif block_type == "image":
            has_non_text = True
            converted = anthropic_image_to_openai(block)
            if converted:
                non_text_blocks.append(converted)
        else:
            has_non_text = True
            non_text_blocks.append(block)

    if not has_non_text:
        return "\n".join(text_parts)

    result: List[Dict[str, Any]] = []
    if text_parts:
        result.append({"type": "text", "text": "\n".join(text_parts)})
    result.extend(non_text_blocks)
    return result


def openai_content_to_anthropic(content: Any) -> List[Dict[str, Any]]:
    """Convert OpenAI content to Anthropic content blocks."""
    if content is None:
        return []
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        return [{"type": "text", "text": str(content)}]

    blocks: List[Dict[str, Any]] = []
    for block in content:
        if isinstance(block, str):
            blocks.append({"type": "text", "text": block})
            continue
        if not isinstance(block, dict):
            continue
        if block.get("type") == "image_url":
            converted = openai_image_to_anthropic(block)
            if converted:
                blocks.append(converted)
        else:
            blocks.append(block)
    return blocks


# ============================================================
# Google parts
# ============================================================

def image_url_to_google_part(url: str) -> Dict[str, Any]:
    parsed = parse_data_uri(url) if url.startswith("data:") else None
    if parsed:
        media_type, data = parsed
        return {"inlineData": {"mimeType": media_type, "data": data}}
    return {"fileData": {"mimeType": guess_media_type(url), "fileUri": url}}


def block_to_google_part(block: Any) -> Optional[Dict[str, Any]]:
    """
    Convert one OpenAI or Anthropic content block to a Google part.

    Tool blocks are handled at message level and return None here, as do
    unsigned thinking blocks.
    """
    if isinstance(block, str):
        return {"text": block}
    if not isinstance(block, dict):
        return None

    block_type = block.get("type")

    if block_type == "thinking":
        if not is_signed_thinking(block):
            return None
        return {
            "text": block.get("thinking", ""),
            "thought": True,
            "thoughtSignature": block["signature"],
        }

    if block_type == "image_url":
        image_url = block.get("image_url")
        url = image_url.get("url") if isinstance(image_url, dict) else image_url
        if isinstance(url, str) and url:
            return image_url_to_google_part(url)
        return None

    if block_type == "image":
        source = block.get("source")
        if not isinstance(source, dict):
            return None
        if source.get("type") == "url" and isinstance(source.get("url"), str):
            return image_url_to_google_part(source["url"])
        if source.get("media_type") and source.get("data"):
            return {"inlineData": {"mimeType": source["media_type"], "data": source["data"]}}
        return None

    if isinstance(block.get("text"), str):
        return {"text": block["text"]}

    return None


def content_to_google_parts(content: Any) -> List[Dict[str, Any]]:
    """Convert OpenAI or Anthropic message content to Google parts."""
    if content is None:
        return []
    if isinstance(content, str):
        return [{"text": content}] if content else []
    if not isinstance(content, list):
        return [{"text": str(content)}]

    parts = []
    for block in content:
        part = block_to_google_part(block)
        if part is not None:
            parts.append(part)
    return parts


def google_parts_to_openai_content(parts: List[Dict[str, Any]]) -> Any:
    """
    Convert Google text/media parts to OpenAI content.

    Thought parts are dropped. Function call/response parts are handled
    at message level and ignored here.
    """
    text_parts: List[str] = []
    media_blocks: List[Dict[str, Any]] = []

    for part in parts:
        if not isinstance(part, dict) or part.get("thought"):
            continue
        if isinstance(part.get("text"), str):
            text_parts.append(part["text"])
        elif isinstance(part.get("inlineData"), dict):
            inline = part["inlineData"]
            if inline.get("mimeType") and inline.get("data"):
                media_blocks.append({
                    "type": "image_url",
                    "image_url": {"url": build_data_uri(inline["mimeType"], inline["data"])},
                })
        elif isinstance(part.get("fileData"), dict):
            uri = part["fileData"].get("fileUri")
            if uri:
                media_blocks.append({"type": "image_url", "image_url": {"url": uri}})

    if not media_blocks:
        return "\n".join(text_parts)

    result: List[Dict[str, Any]] = []
    if text_parts:
        result.append({"type": "text", "text": "\n".join(text_parts)})
    result.extend(media_blocks)
    return result

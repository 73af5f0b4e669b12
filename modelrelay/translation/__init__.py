"""
ModelRelay - Translation Module

Request-body translation between the OpenAI, Anthropic and Google
format families.

Usage:
    from modelrelay.translation import convert_request

    body = convert_request(request_body, "claude", "gemini-cli")
"""

from .detector import detect_format
from .messages import convert_messages, messages_key, parse_tool_arguments
from .parameters import normalize_parameters, validate_parameters
from .tools import FunctionDeclaration, ToolNormalizer, convert_tools, normalize_tools
from .translator import apply_system, convert_body, convert_request, extract_system

__all__ = [
    "detect_format",
    "convert_messages",
    "messages_key",
    "parse_tool_arguments",
    "normalize_parameters",
    "validate_parameters",
    "FunctionDeclaration",
    "ToolNormalizer",
    "convert_tools",
    "normalize_tools",
    "apply_system",
    "convert_body",
    "convert_request",
    "extract_system",
]

"""
ModelRelay - Parameter Normalization

Maps generation parameters (max tokens, sampling, stop sequences) between
the vocabularies of the three families, and drops out-of-range values.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from ..core.formats import APIFormat, get_default_max_tokens_param
from ..observability.logging import get_logger

logger = get_logger(__name__)

# Searched in this order, top level first, then inside generationConfig.
MAX_TOKEN_KEYS = ("maxOutputTokens", "maxTokens", "max_tokens", "max_completion_tokens")

STOP_KEYS = ("stop", "stop_sequences", "stopSequences")

# (snake_case, camelCase) names of each sampling parameter.
SAMPLING_KEYS: Tuple[Tuple[str, str], ...] = (
    ("temperature", "temperature"),
    ("top_p", "topP"),
    ("top_k", "topK"),
)

# name -> (minimum, maximum or None)
PARAMETER_RANGES: Dict[str, Tuple[float, Optional[float]]] = {
    "temperature": (0.0, 2.0),
    "top_p": (0.0, 1.0),
    "topP": (0.0, 1.0),
    "top_k": (1.0, None),
    "topK": (1.0, None),
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _generation_config(body: Dict[str, Any], create: bool = False) -> Optional[Dict[str, Any]]:
    config = body.get("generationConfig")
    if isinstance(config, dict):
        return config
    if create:
        body["generationConfig"] = {}
        return body["generationConfig"]
    return None


def _parameter_sources(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    sources = [body]
    config = _generation_config(body)
    if config is not None:
        sources.append(config)
    return sources


# ============================================================
# Max tokens
# ============================================================

def as_token_count(value: Any) -> Optional[int]:
    """Floor a numeric max-token value; None when not a number >= 1."""
    if not _is_number(value) or value < 1:
        return None
    return int(math.floor(value))


def extract_max_tokens(body: Dict[str, Any]) -> Optional[int]:
    """First usable max-token value across every known name and location."""
    for source in _parameter_sources(body):
        for key in MAX_TOKEN_KEYS:
            value = as_token_count(source.get(key))
            if value is not None:
                return value
    return None


def normalize_max_tokens(body: Dict[str, Any], target: APIFormat) -> None:
    value = extract_max_tokens(body)

    for source in _parameter_sources(body):
        for key in MAX_TOKEN_KEYS:
            source.pop(key, None)

    if value is None:
        return

    param = get_default_max_tokens_param(target)
    if target == APIFormat.GOOGLE:
        _generation_config(body, create=True)[param] = value
    else:
        body[param] = value


# ============================================================
# Sampling and stop sequences
# ============================================================

def normalize_sampling(body: Dict[str, Any], target: APIFormat) -> None:
    """Move temperature/top_p/top_k into the target family's slot."""
    for snake, camel in SAMPLING_KEYS:
        value = None
        for source in _parameter_sources(body):
            for key in (snake, camel):
                if key not in source:
                    continue
                found = source.pop(key)
                if value is None:
                    value = found

        if value is None:
            continue

        if target == APIFormat.GOOGLE:
            _generation_config(body, create=True)[camel] = value
        else:
            body[snake] = value


def extract_stop_sequences(body: Dict[str, Any]) -> Optional[List[str]]:
    """Remove every stop-sequence field and return the first one found."""
    value = None
    for source in _parameter_sources(body):
        for key in STOP_KEYS:
            if key not in source:
                continue
            found = source.pop(key)
            if value is None:
                value = found

    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None

    sequences = [item for item in value if isinstance(item, str)]
    return sequences or None


def normalize_stop_sequences(body: Dict[str, Any], target: APIFormat) -> None:
    sequences = extract_stop_sequences(body)
    if sequences is None:
        return

    if target == APIFormat.GOOGLE:
        _generation_config(body, create=True)["stopSequences"] = sequences
    elif target == APIFormat.ANTHROPIC:
        body["stop_sequences"] = sequences
    else:
        body["stop"] = sequences


def normalize_parameters(body: Dict[str, Any], target: APIFormat) -> Dict[str, Any]:
    """
    Re-emit generation parameters under the target family's canonical names.

    Runs for same-family targets too, so e.g. max_completion_tokens becomes
    max_tokens and an Anthropic body never carries OpenAI `stop`.
    """
    normalize_max_tokens(body, target)
    normalize_sampling(body, target)
    normalize_stop_sequences(body, target)
    return body


# ============================================================
# Validation
# ============================================================

def _in_range(value: Any, minimum: float, maximum: Optional[float]) -> bool:
    if not _is_number(value) or value < minimum:
        return False
    return maximum is None or value <= maximum


def validate_parameters(body: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop sampling parameters the target would reject.

    temperature must be in [0, 2], top_p/topP in [0, 1] and top_k/topK >= 1.
    Applies at top level and inside generationConfig.
    """
    for source in _parameter_sources(body):
        for key, (minimum, maximum) in PARAMETER_RANGES.items():
            if key in source and not _in_range(source[key], minimum, maximum):
                logger.debug("Dropping out-of-range parameter", parameter=key, value=source[key])
                del source[key]
    return body

"""
ModelRelay - Stub Backend

Deterministic in-process backend used for local mode and tests.
No network calls, no provider credentials required.

Outcomes can be scripted per model id (or "provider/model"): a response,
an exception to raise, or a list consumed in order whose last item
repeats. Unscripted models get a family-shaped success response.
"""

from typing import Any, Dict, List, Tuple, Union

from ..core.formats import APIFormat
from ..fallback.models import FallbackEntry
from .base import Backend, BackendResponse

Outcome = Union[BackendResponse, BaseException]

STUB_TEXT = "stub: deterministic response"


def stub_success(api_format: APIFormat, model: str) -> BackendResponse:
    """Minimal success response in a family's native shape."""
    if api_format == APIFormat.ANTHROPIC:
        payload = {
            "id": "msg_stub123",
            "type": "message",
            "role": "assistant",
            "model": model,
            "content": [{"type": "text", "text": STUB_TEXT}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 8, "output_tokens": 6},
        }
    elif api_format == APIFormat.GOOGLE:
        payload = {
            "candidates": [{
                "content": {"role": "model", "parts": [{"text": STUB_TEXT}]},
                "finishReason": "STOP",
            }],
            "modelVersion": model,
            "usageMetadata": {"promptTokenCount": 8, "candidatesTokenCount": 6},
        }
    else:
        payload = {
            "id": "chatcmpl-stub123",
            "object": "chat.completion",
            "model": model,
            "choices": [{
                "index": 0,
                "message": {"role": "assistant", "content": STUB_TEXT},
                "finish_reason": "stop",
            }],
            "usage": {"prompt_tokens": 8, "completion_tokens": 6, "total_tokens": 14},
        }
    return BackendResponse.from_json(200, payload)


class StubBackend(Backend):
    """Deterministic backend for tests/smoke checks."""

    name = "stub"

    def __init__(self, scripts: Dict[str, Union[Outcome, List[Outcome]]] = None):
        self._scripts: Dict[str, List[Outcome]] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        for key, outcomes in (scripts or {}).items():
            self.script(key, *(outcomes if isinstance(outcomes, list) else [outcomes]))

    def script(self, key: str, *outcomes: Outcome):
        """Script outcomes for a model id or "provider/model"."""
        self._scripts[key] = list(outcomes)

    def _next_outcome(self, provider: str, model: str):
        for key in (f"{provider}/{model}", model):
            queue = self._scripts.get(key)
            if queue:
                return queue.pop(0) if len(queue) > 1 else queue[0]
        return None

    def _resolve(self, provider: str, api_format: APIFormat, model: str, body: Dict[str, Any]) -> BackendResponse:
        self.calls.append((provider, model, body))
        outcome = self._next_outcome(provider, model)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome or stub_success(api_format, model)

    async def send(self, entry: FallbackEntry, body: Dict[str, Any]) -> BackendResponse:
        return self._resolve(entry.provider, entry.api_format, entry.model_id, body)

    async def forward(self, api_format: APIFormat, model: str, body: Dict[str, Any]) -> BackendResponse:
        return self._resolve("upstream", api_format, model, body)

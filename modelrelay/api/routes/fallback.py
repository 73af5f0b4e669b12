"""
ModelRelay - Fallback Management API

Endpoints for editing virtual models and their fallback chains, and for
inspecting or clearing the active routes. Every mutation is written
through to the configuration file before it is returned.

Virtual models are addressed by id; a case-insensitive name is accepted
as well.

Handlers that reach the settings service are plain functions so the
blocking file write runs in the threadpool, off the event loop.
"""

import json
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse, Response

from ...core.errors import (
    DuplicateVirtualModelError,
    FallbackEntryNotFoundError,
    InvalidRequestError,
    VirtualModelNotFoundError,
)
from ...fallback.models import FallbackEntry, VirtualModel
from ...fallback.settings import FallbackSettingsService
from ..dependencies import get_request_id, get_services, get_settings_service
from ..models import (
    AddFallbackEntryRequest,
    CreateVirtualModelRequest,
    MoveFallbackEntryRequest,
    SetEnabledRequest,
    UpdateVirtualModelRequest,
)


router = APIRouter(prefix="/v1/fallback", tags=["fallback"])


# ============================================================
# Helpers
# ============================================================

def _entry_to_dict(entry: FallbackEntry) -> Dict[str, Any]:
    data = entry.to_dict()
    data["displayName"] = entry.display_name
    return data


def _model_to_dict(model: VirtualModel) -> Dict[str, Any]:
    data = model.to_dict()
    data["fallbackEntries"] = [_entry_to_dict(e) for e in model.sorted_entries()]
    return data


def _require_model(service: FallbackSettingsService, ref: str, request: Request) -> VirtualModel:
    model = service.lookup(ref)
    if model is None:
        raise VirtualModelNotFoundError(ref, request_id=get_request_id(request))
    return model


# ============================================================
# Configuration
# ============================================================

@router.get("/config")
def get_config(service: FallbackSettingsService = Depends(get_settings_service)):
    """Current fallback configuration."""
    return service.configuration.to_dict()


@router.put("/enabled")
def set_enabled(
    payload: SetEnabledRequest,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    """Turn fallback routing on or off. Disabling clears all active routes."""
    return service.set_enabled(payload.enabled).to_dict()


# ============================================================
# Virtual models
# ============================================================

@router.post("/models", status_code=201)
def create_virtual_model(
    payload: CreateVirtualModelRequest,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    model = service.add_virtual_model(payload.name)
    if model is None:
        raise DuplicateVirtualModelError(payload.name, request_id=get_request_id(request))
    return _model_to_dict(model)


@router.get("/models/{model_ref}")
def get_virtual_model(
    model_ref: str,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    return _model_to_dict(_require_model(service, model_ref, request))


@router.patch("/models/{model_ref}")
def update_virtual_model(
    model_ref: str,
    payload: UpdateVirtualModelRequest,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    """Rename and/or enable/disable a virtual model."""
    model = _require_model(service, model_ref, request)

    if payload.name is not None and payload.name != model.name:
        if not service.rename_virtual_model(model.id, payload.name):
            raise DuplicateVirtualModelError(payload.name, request_id=get_request_id(request))

    if payload.is_enabled is not None and payload.is_enabled != model.is_enabled:
        service.toggle_virtual_model(model.id)

    return _model_to_dict(service.get_virtual_model(model.id))


@router.post("/models/{model_ref}/toggle")
def toggle_virtual_model(
    model_ref: str,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    model = _require_model(service, model_ref, request)
    service.toggle_virtual_model(model.id)
    return _model_to_dict(service.get_virtual_model(model.id))


@router.delete("/models/{model_ref}")
def delete_virtual_model(
    model_ref: str,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    model = _require_model(service, model_ref, request)
    service.remove_virtual_model(model.id)
    return {"id": model.id, "name": model.name, "deleted": True}


# ============================================================
# Fallback entries
# ============================================================

@router.post("/models/{model_ref}/entries", status_code=201)
def add_fallback_entry(
    model_ref: str,
    payload: AddFallbackEntryRequest,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    """Append an entry at the lowest priority of the chain."""
    model = _require_model(service, model_ref, request)
    entry = service.add_fallback_entry(model.id, payload.provider, payload.model_id)
    if entry is None:
        raise InvalidRequestError(
            "Fallback entry needs a provider and a model id",
            param="modelId",
            request_id=get_request_id(request),
        )
    return _entry_to_dict(entry)


@router.delete("/models/{model_ref}/entries/{entry_id}")
def remove_fallback_entry(
    model_ref: str,
    entry_id: str,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    model = _require_model(service, model_ref, request)
    if not service.remove_fallback_entry(model.id, entry_id):
        raise FallbackEntryNotFoundError(model.name, entry_id, request_id=get_request_id(request))
    return _model_to_dict(service.get_virtual_model(model.id))


@router.post("/models/{model_ref}/entries/move")
def move_fallback_entry(
    model_ref: str,
    payload: MoveFallbackEntryRequest,
    request: Request,
    service: FallbackSettingsService = Depends(get_settings_service),
):
    """Move an entry to a new position; priorities are renumbered 1..N."""
    model = _require_model(service, model_ref, request)
    if not service.move_fallback_entry(model.id, payload.from_index, payload.to_index):
        raise InvalidRequestError(
            f"Entry index out of range for a chain of {len(model.fallback_entries)}",
            param="fromIndex",
            request_id=get_request_id(request),
        )
    return _model_to_dict(service.get_virtual_model(model.id))


# ============================================================
# Active routes
# ============================================================

@router.get("/routes")
async def list_routes():
    """Where each virtual model's last dispatch ended up."""
    route_cache = get_services().route_cache
    return {"routes": [state.to_dict() for state in route_cache.get_all_route_states()]}


@router.delete("/routes")
async def clear_routes():
    """Forget all sticky routes; the next dispatch starts at the head of each chain."""
    get_services().route_cache.clear_all()
    return {"cleared": True}


# ============================================================
# Import / export
# ============================================================

@router.get("/export")
def export_config(service: FallbackSettingsService = Depends(get_settings_service)):
    return Response(content=service.export_configuration(), media_type="application/json")


@router.post("/import")
def import_config(
    request: Request,
    document: Any = Body(...),
    service: FallbackSettingsService = Depends(get_settings_service),
):
    """Replace the configuration with an exported document."""
    if not service.import_configuration(json.dumps(document)):
        raise InvalidRequestError(
            "Configuration document must be a JSON object",
            request_id=get_request_id(request),
        )
    return JSONResponse(content=service.configuration.to_dict())


@router.post("/reset")
def reset_config(service: FallbackSettingsService = Depends(get_settings_service)):
    return service.reset_to_defaults().to_dict()

"""
ModelRelay - API Request Models

Pydantic models for the fallback management endpoints.
Field names accept both snake_case and the camelCase used by the
persisted configuration document.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================
# Request Models
# ============================================================

class SetEnabledRequest(BaseModel):
    """Turn the fallback feature on or off."""
    enabled: bool


class CreateVirtualModelRequest(BaseModel):
    """Create a virtual model with an empty chain."""
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be blank")
        return v


class UpdateVirtualModelRequest(BaseModel):
    """Rename and/or enable/disable a virtual model."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_enabled: Optional[bool] = Field(default=None, alias="isEnabled")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be blank")
        return v

    @model_validator(mode="after")
    def validate_has_change(self):
        if self.name is None and self.is_enabled is None:
            raise ValueError("Provide at least one of: name, isEnabled")
        return self


class AddFallbackEntryRequest(BaseModel):
    """Append an entry to a virtual model's chain."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    provider: str = Field(..., min_length=1)
    model_id: str = Field(..., min_length=1, alias="modelId")


class MoveFallbackEntryRequest(BaseModel):
    """Move one chain entry to a new position."""
    model_config = ConfigDict(populate_by_name=True)

    from_index: int = Field(..., ge=0, alias="fromIndex")
    to_index: int = Field(..., ge=0, alias="toIndex")

"""
Pydantic schemas for workspace feature toggles.
"""
from typing import Any
from pydantic import BaseModel, StrictBool


class FeatureToggleUpdate(BaseModel):
    """Schema for switching a feature on or off."""
    enabled: StrictBool


class SettingResponse(BaseModel):
    success: bool = True
    value: Any

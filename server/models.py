"""
Pydantic models for API requests/responses.
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field

from pdfdeck.models import ExtractionMode, SlideOutcome


class ConversionSettings(BaseModel):
    """Settings for a conversion job."""
    generate_audit: bool = Field(default=True, description="Generate audit HTML")
    save_intermediate: bool = Field(default=True, description="Save slides JSON")
    max_pages: int = Field(default=100, ge=1, le=100, description="Page cap")

    model_config = {
        "json_schema_extra": {
            "example": {
                "generate_audit": True,
                "save_intermediate": True,
                "max_pages": 100,
            }
        }
    }


class SlideItemResponse(BaseModel):
    """One page of a job, as shown in the preview grid."""
    page_number: int
    mode: ExtractionMode
    enabled: bool
    width_px: int
    height_px: int


class JobResponse(BaseModel):
    """Job status response."""
    job_id: str
    filename: str
    status: str
    progress: float = 0.0
    message: str = ""
    error: Optional[str] = None
    created_at: str
    slides: List[SlideItemResponse] = Field(default_factory=list)
    outcomes: List[SlideOutcome] = Field(default_factory=list)
    failed_pages: List[int] = Field(default_factory=list)
    artifacts: Dict[str, str] = Field(default_factory=dict)


class SlideUpdateRequest(BaseModel):
    """Change one page's settings."""
    enabled: Optional[bool] = None
    mode: Optional[ExtractionMode] = None


class BulkSlideUpdateRequest(BaseModel):
    """Change every page (enabled) or every enabled page (mode)."""
    enabled: Optional[bool] = None
    mode: Optional[ExtractionMode] = None


class SettingsRequest(BaseModel):
    """Store the caller's Gemini API key."""
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(..., alias="apiKey", min_length=1)


class SettingsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_key: bool = Field(..., alias="hasKey")


class AllowedUserRequest(BaseModel):
    email: str = Field(..., min_length=3)


class AllowedUserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    added_by: Optional[str] = Field(None, alias="addedBy")
    created_at: str = Field(..., alias="createdAt")


class RegisterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    email: Optional[str] = None
    is_admin: bool = Field(False, alias="isAdmin")


class ModeResponse(BaseModel):
    """One extraction mode, as offered by the mode picker."""
    model_config = ConfigDict(populate_by_name=True)

    mode: ExtractionMode
    label: str
    description: str
    uses_model: bool = Field(..., alias="usesModel")

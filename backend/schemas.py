"""
Pydantic schemas for API request/response validation.

These schemas provide:
- Type safety for API inputs and outputs
- Automatic validation and error messages
- OpenAPI documentation generation

Design note: field names mirror the JSON produced by the engine's
to_dict() methods, so responses are built with Schema(**obj.to_dict()).
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response for API errors."""
    detail: str
    code: Optional[str] = None


# =============================================================================
# Section Schemas
# =============================================================================

class ActionButtonSchema(BaseModel):
    action_name: str
    display: str
    tooltip: str = ""
    action_param: str = ""
    post_action_refresh: List[str] = []


class DoneCountsSchema(BaseModel):
    completed_tasks: int = 0
    last_updated: Optional[str] = None


class SectionSchema(BaseModel):
    """One dashboard section."""
    id: str
    section_code: str
    name: str
    description: str = ""
    section_filename: str = ""
    show_setting_name: str = ""
    items: List[Dict[str, Any]] = []
    done_counts: Optional[DoneCountsSchema] = None
    total_count: int = 0
    generated_at: Optional[str] = None
    is_referenced: bool = False
    action_buttons: List[ActionButtonSchema] = []

    class Config:
        from_attributes = True


class PerspectiveSchema(BaseModel):
    """A named settings snapshot."""
    name: str
    dashboardSettings: Dict[str, Any] = {}
    isActive: bool = False
    isModified: bool = False


class DashboardStateResponse(BaseModel):
    """The state blob pushed to the UI."""
    sections: List[SectionSchema]
    perspectiveSettings: List[PerspectiveSchema]
    dashboardSettings: Dict[str, Any]
    totalDoneCount: int = 0
    refreshing: Union[bool, List[str]] = False
    lastFullRefresh: Optional[str] = None
    errorMessage: str = ""


class RefreshSectionsRequest(BaseModel):
    """Request body for refreshing some sections."""
    section_codes: List[str] = Field(..., min_length=1)


class DocumentSavedRequest(BaseModel):
    filename: str = Field(..., min_length=1)


# =============================================================================
# Action Schemas
# =============================================================================

class ActionRequestSchema(BaseModel):
    """Request body for the action bridge."""
    action_type: str = Field(..., min_length=1)
    target_filename: str = ""
    target_content: str = ""
    control_value: str = ""
    section_codes: List[str] = []
    extra: Dict[str, Any] = {}


class HandlerResultSchema(BaseModel):
    """Outcome of an action request."""
    success: bool
    actions: List[str] = []
    message: str = ""
    payload: Optional[Dict[str, Any]] = None
    section_codes: List[str] = []
    updated_para: Optional[Dict[str, Any]] = None
    state: str

    class Config:
        from_attributes = True


# =============================================================================
# Perspective Schemas
# =============================================================================

class PerspectiveListResponse(BaseModel):
    perspectives: List[PerspectiveSchema]
    active: str

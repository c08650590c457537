"""API request/response Pydantic schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """A single validation error detail."""

    code: str
    message: str
    path: str | None = None
    suggestions: list[str] = []


class ValidateRequest(BaseModel):
    """Request body for POST /validate."""

    definition_yaml: str = Field(description="YAML pipeline definition to validate")


class ValidateResponse(BaseModel):
    """Response body for POST /validate."""

    valid: bool
    errors: list[ErrorDetail] = []
    warnings: list[ErrorDetail] = []


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


class DefinitionLoadRequest(BaseModel):
    """Request body for POST /definitions."""

    definition_yaml: str = Field(description="YAML pipeline definition content")


class DefinitionLoadResponse(BaseModel):
    """Response body for POST /definitions."""

    definition_id: str
    name: str
    stages: int
    branches: list[str] = []
    resources: int
    warnings: list[str] = []


class DefinitionSummaryResponse(BaseModel):
    """Short definition summary for listing."""

    definition_id: str
    name: str
    repository: str
    stages: int


class DefinitionListResponse(BaseModel):
    """Response for GET /definitions."""

    definitions: list[DefinitionSummaryResponse] = []


class ActionInfoResponse(BaseModel):
    name: str
    provider: str
    run_order: int
    input_artifacts: list[str] = []
    output_artifacts: list[str] = []


class StageInfoResponse(BaseModel):
    name: str
    actions: list[ActionInfoResponse] = []


class ParameterInfoResponse(BaseModel):
    name: str
    description: str = ""
    default: str | None = None
    allowed_values: list[str] = []
    allowed_pattern: str | None = None


class RoleInfoResponse(BaseModel):
    logical_id: str
    role_name: str
    service_principal: str
    responsibility: str
    actions: list[str] = []


class DefinitionDescribeResponse(BaseModel):
    """Response for GET /definitions/{definition_id}."""

    definition_id: str
    name: str
    repository: str
    branches: list[str] = []
    default_branch: str
    environments: list[str] = []
    trigger_events: list[str] = []
    stages: list[StageInfoResponse] = []
    parameters: list[ParameterInfoResponse] = []
    roles: list[RoleInfoResponse] = []
    resources: dict[str, str] = {}
    outputs: list[str] = []
    target_trust_policy: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Templates and parameters
# ---------------------------------------------------------------------------


class TemplateRequest(BaseModel):
    """Request body for POST /definitions/{definition_id}/template."""

    format: str = Field("yaml", description="Output format: json or yaml")
    parameters: dict[str, str] | None = Field(
        None, description="Stack parameter values to check before rendering"
    )


class TemplateResponse(BaseModel):
    """A rendered CloudFormation template."""

    template: str
    format: str
    resources: list[str] = []
    outputs: list[str] = []
    parameters: dict[str, str] = {}
    warnings: list[str] = []
    template_valid: bool = True


class ParametersRequest(BaseModel):
    """Request body for POST /definitions/{definition_id}/parameters."""

    parameters: dict[str, str] = {}


class ParametersResponse(BaseModel):
    """Effective stack parameter values after defaults are applied."""

    parameters: dict[str, str] = {}


class DiagramResponse(BaseModel):
    """Response for GET /definitions/{definition_id}/diagram."""

    mermaid: str


# ---------------------------------------------------------------------------
# Formats / health
# ---------------------------------------------------------------------------


class FormatInfo(BaseModel):
    """Information about a supported output format."""

    name: str
    media_type: str
    capabilities: dict[str, bool] = {}


class FormatListResponse(BaseModel):
    """Response for GET /formats."""

    formats: list[FormatInfo] = []


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = ""

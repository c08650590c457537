"""Definition endpoints: load, describe, render, parameter checks, diagrams."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from crossdeploy.api.deps import get_definition_store
from crossdeploy.api.schemas import (
    DefinitionDescribeResponse,
    DefinitionListResponse,
    DefinitionLoadRequest,
    DefinitionLoadResponse,
    DefinitionSummaryResponse,
    DiagramResponse,
    ParametersRequest,
    ParametersResponse,
    TemplateRequest,
    TemplateResponse,
)
from crossdeploy.compiler.parameters import ParameterValidationError
from crossdeploy.models.errors import DefinitionError, DefinitionValidationError
from crossdeploy.render.registry import UnsupportedFormatError
from crossdeploy.service.definition_store import DefinitionStore
from crossdeploy.service.diagram import generate_mermaid_flow

router = APIRouter()


# -- helpers -----------------------------------------------------------------


def _not_found(definition_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Definition '{definition_id}' not found")


def _error_list(errors: list[DefinitionError]) -> list[dict[str, object]]:
    return [
        {"code": e.code, "message": e.message, "path": e.path, "suggestions": e.suggestions}
        for e in errors
    ]


def _render(
    store: DefinitionStore,
    definition_id: str,
    format_name: str,
    parameters: Mapping[str, str] | None,
) -> TemplateResponse:
    try:
        result = store.render(definition_id, format_name, parameters)
    except KeyError:
        raise _not_found(definition_id) from None
    except UnsupportedFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None
    except ParameterValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": "Invalid stack parameters", "errors": _error_list(exc.errors)},
        ) from None
    return TemplateResponse(**asdict(result))


# -- definition CRUD ---------------------------------------------------------


@router.post("", response_model=DefinitionLoadResponse, status_code=201)
async def load_definition(
    body: DefinitionLoadRequest,
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> DefinitionLoadResponse:
    """Load a pipeline definition and build its stack plan."""
    try:
        result = store.load_definition(body.definition_yaml)
    except DefinitionValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Invalid pipeline definition: parsing or validation failed",
                "errors": _error_list(exc.errors),
            },
        ) from None
    return DefinitionLoadResponse(**asdict(result))


@router.get("", response_model=DefinitionListResponse)
async def list_definitions(
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> DefinitionListResponse:
    """List all loaded definitions."""
    return DefinitionListResponse(
        definitions=[DefinitionSummaryResponse(**asdict(s)) for s in store.list_definitions()]
    )


@router.get("/{definition_id}", response_model=DefinitionDescribeResponse)
async def describe_definition(
    definition_id: str,
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> DefinitionDescribeResponse:
    """Describe a loaded definition: stages, parameters, roles and resources."""
    try:
        desc = store.describe(definition_id)
    except KeyError:
        raise _not_found(definition_id) from None
    return DefinitionDescribeResponse(**asdict(desc))


@router.delete("/{definition_id}", status_code=204)
async def remove_definition(
    definition_id: str,
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> None:
    """Unload a definition."""
    try:
        store.remove_definition(definition_id)
    except KeyError:
        raise _not_found(definition_id) from None


# -- templates ---------------------------------------------------------------


@router.get("/{definition_id}/template", response_model=TemplateResponse)
async def get_template(
    definition_id: str,
    format: str = "yaml",  # noqa: A002
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> TemplateResponse:
    """Render the CloudFormation template in the requested format."""
    return _render(store, definition_id, format, None)


@router.post("/{definition_id}/template", response_model=TemplateResponse)
async def render_template(
    definition_id: str,
    body: TemplateRequest,
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> TemplateResponse:
    """Render the template after checking the supplied stack parameter values."""
    return _render(store, definition_id, body.format, body.parameters)


@router.post("/{definition_id}/parameters", response_model=ParametersResponse)
async def check_parameters(
    definition_id: str,
    body: ParametersRequest,
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> ParametersResponse:
    """Apply defaults and constraints to stack parameter values."""
    try:
        bound = store.bind_parameters(definition_id, body.parameters)
    except KeyError:
        raise _not_found(definition_id) from None
    except ParameterValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": "Invalid stack parameters", "errors": _error_list(exc.errors)},
        ) from None
    return ParametersResponse(parameters=bound)


# -- diagrams ----------------------------------------------------------------


@router.get("/{definition_id}/diagram", response_model=DiagramResponse)
async def definition_diagram(
    definition_id: str,
    theme: str = "default",
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> DiagramResponse:
    """Generate a Mermaid flowchart of the deployment event flow."""
    try:
        plan = store.get_plan(definition_id)
    except KeyError:
        raise _not_found(definition_id) from None
    return DiagramResponse(mermaid=generate_mermaid_flow(plan, theme=theme))

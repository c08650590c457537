"""Stateless validation endpoint: POST /validate."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from crossdeploy.api.deps import get_definition_store
from crossdeploy.api.schemas import ErrorDetail, ValidateRequest, ValidateResponse
from crossdeploy.service.definition_store import DefinitionStore, ErrorInfo

router = APIRouter()


def _detail(info: ErrorInfo) -> ErrorDetail:
    return ErrorDetail(
        code=info.code, message=info.message, path=info.path, suggestions=info.suggestions
    )


@router.post("", response_model=ValidateResponse)
async def validate_definition(
    body: ValidateRequest,
    store: DefinitionStore = Depends(get_definition_store),  # noqa: B008
) -> ValidateResponse:
    """Validate a pipeline definition without loading it."""
    summary = store.validate(body.definition_yaml)
    return ValidateResponse(
        valid=summary.valid,
        errors=[_detail(e) for e in summary.errors],
        warnings=[_detail(w) for w in summary.warnings],
    )

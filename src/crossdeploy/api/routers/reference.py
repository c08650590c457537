"""Reference endpoint: GET /reference/definition."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from crossdeploy.definition_reference import DEFINITION_REFERENCE

router = APIRouter()


class ReferenceResponse(BaseModel):
    """Response for GET /reference/definition."""

    reference: str = Field(description="Pipeline definition format reference text")


@router.get("/definition", response_model=ReferenceResponse)
async def get_definition_reference() -> ReferenceResponse:
    """Return the full pipeline definition format reference."""
    return ReferenceResponse(reference=DEFINITION_REFERENCE)

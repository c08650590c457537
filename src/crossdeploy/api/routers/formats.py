"""Format listing endpoint: GET /formats."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter

from crossdeploy.api.schemas import FormatInfo, FormatListResponse
from crossdeploy.render.registry import FormatRegistry

router = APIRouter()


@router.get("", response_model=FormatListResponse)
async def list_formats() -> FormatListResponse:
    """List all available template formats and their capabilities."""
    formats = []
    for name in FormatRegistry.available():
        fmt = FormatRegistry.get(name)
        caps = asdict(fmt.capabilities)
        formats.append(FormatInfo(name=name, media_type=fmt.media_type, capabilities=caps))
    return FormatListResponse(formats=formats)

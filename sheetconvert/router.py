"""
Conversion router for the /upload endpoint.

Pipeline errors propagate as ConversionError subclasses and are turned into
structured JSON responses by the application's exception handlers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from .utils.conversion_core import ConversionOrchestrator
from .utils.conversion_lookup import get_supported_conversions

# Set up logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["conversions"])


def get_orchestrator(request: Request) -> ConversionOrchestrator:
    return request.app.state.orchestrator


@router.post("/upload")
async def upload_and_convert(
    request: Request,
    file: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
):
    """
    Convert an uploaded .xls/.xlsx spreadsheet.

    Form fields:
        file: The spreadsheet to convert
        format: Target format (``xlsx`` or ``csv``); defaults to the configured format

    Returns:
        JSON with the public ``download_url`` of the converted file
    """
    orchestrator = get_orchestrator(request)
    result = await orchestrator.handle_upload(file, format)
    return JSONResponse(content=result.to_dict())


@router.get("/supported")
async def get_supported_conversions_endpoint(request: Request):
    """
    Get the accepted input formats and the available output formats.
    """
    return get_supported_conversions(get_orchestrator(request).config)

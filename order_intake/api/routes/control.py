from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from order_intake.pipeline.intake import ALREADY_RUNNING, IntakePipeline, get_intake_pipeline

logger = logging.getLogger(__name__)
router = APIRouter()

PipelineDep = Annotated[IntakePipeline, Depends(get_intake_pipeline)]


@router.api_route("/process-now", methods=["GET", "POST"])
async def process_now(pipeline: PipelineDep) -> JSONResponse:
    result = await pipeline.run()
    summary = result.summary()
    if result.skipped:
        return JSONResponse(
            status_code=409,
            content={"success": False, "error": ALREADY_RUNNING, "summary": summary},
        )
    if result.fetch_failed or result.errors:
        return JSONResponse(
            status_code=502 if result.fetch_failed else 500,
            content={"success": False, "error": "; ".join(result.errors), "summary": summary},
        )
    return JSONResponse(content={"success": True, "message": "Processing completed", "summary": summary})


@router.api_route("/setup-sheets", methods=["GET", "POST"])
async def setup_sheets(pipeline: PipelineDep) -> JSONResponse:
    try:
        await pipeline.ledger.setup_headers()
    except Exception as exc:
        logger.error(
            "Error setting up Google Sheets headers: %s",
            exc,
            extra={"event_type": "api.setup_sheets.failed", "ops_payload": {"exception_type": type(exc).__name__}},
        )
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or type(exc).__name__})
    return JSONResponse(content={"success": True, "message": "Google Sheets setup completed"})

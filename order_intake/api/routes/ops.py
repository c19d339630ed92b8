from __future__ import annotations

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from order_intake.config import Settings, get_settings
from order_intake.ops import events as ops_events
from order_intake.ops.events import EventLevel
from order_intake.pipeline.intake import IntakePipeline, get_intake_pipeline

router = APIRouter()

Status = Literal["ok", "degraded", "error", "unknown"]


class ServiceStatus(BaseModel):
    name: str
    status: Status
    detail: str | None = None


class OpsStatusResponse(BaseModel):
    generated_at: str
    running: bool
    processed_ids: int
    watermark: str
    services: list[ServiceStatus]
    last_run: dict[str, Any] | None = None


class OpsEventResponse(BaseModel):
    timestamp: str
    level: EventLevel
    component: str
    event_type: str
    message: str
    correlation_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


def _require_ops_console(settings: Annotated[Settings, Depends(get_settings)]) -> None:
    if not settings.ops_console_enabled:
        raise HTTPException(status_code=404, detail="ops_console_disabled")


def _integration_status(name: str, component: object, missing_detail: str) -> ServiceStatus:
    configured = getattr(component, "configured", True)
    if configured:
        return ServiceStatus(name=name, status="ok", detail="configured")
    return ServiceStatus(name=name, status="degraded", detail=missing_detail)


def _scheduler_status(pipeline: IntakePipeline) -> ServiceStatus:
    last = pipeline.last_result
    if last is None:
        return ServiceStatus(name="intake", status="unknown", detail="no run recorded yet")
    if last.fetch_failed:
        return ServiceStatus(name="intake", status="error", detail="; ".join(last.errors))
    if last.sink_failures or last.classification_failures:
        return ServiceStatus(
            name="intake",
            status="degraded",
            detail=(
                f"classification_failures={last.classification_failures} "
                f"ledger_failures={last.ledger_failures} alert_failures={last.alert_failures}"
            ),
        )
    return ServiceStatus(
        name="intake",
        status="ok",
        detail=f"processed={last.processed} orders={last.orders_detected}",
    )


@router.get("/status", response_model=OpsStatusResponse)
async def status(
    _: Annotated[None, Depends(_require_ops_console)],
    pipeline: Annotated[IntakePipeline, Depends(get_intake_pipeline)],
) -> OpsStatusResponse:
    services = [
        _integration_status("openphone", pipeline.source, "OPENPHONE_API_KEY missing"),
        _integration_status("classifier", getattr(pipeline.classifier, "router", None), "OPENAI_API_KEY missing"),
        _integration_status("google_sheets", pipeline.ledger, "Google Sheets credentials or sheet id missing"),
        _integration_status("slack", pipeline.alerts, "SLACK_WEBHOOK_URL missing"),
        _scheduler_status(pipeline),
    ]
    return OpsStatusResponse(
        generated_at=ops_events.iso_now(),
        running=pipeline.running,
        processed_ids=len(pipeline.state.processed_ids),
        watermark=pipeline.state.watermark.isoformat(),
        services=services,
        last_run=pipeline.last_result.summary() if pipeline.last_result else None,
    )


@router.get("/events", response_model=list[OpsEventResponse])
async def events(
    _: Annotated[None, Depends(_require_ops_console)],
    limit: int = Query(100, ge=1, le=500),
    level: EventLevel | None = Query(default=None),
    event_type: str | None = Query(default=None, alias="type"),
    correlation_id: str | None = Query(default=None),
) -> list[OpsEventResponse]:
    items = ops_events.ops_event_buffer.recent(
        limit=limit, level=level, event_type=event_type, correlation_id=correlation_id
    )
    return [OpsEventResponse(**item) for item in items]

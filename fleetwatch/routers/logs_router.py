from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Response, status
from opentelemetry import trace

from ..logs.live_tail import MAX_LOG_LINES
from ..models.log_models import LogLevel
from ..services import runtime

logger = logging.getLogger("fleetwatch.logs")
tracer = trace.get_tracer(__name__)

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("", summary="Contents of the live-tail buffer for the open detail view.")
def get_logs(
    level: Optional[LogLevel] = None,
    module: Optional[str] = None,
    limit: int = Query(500, ge=1, le=MAX_LOG_LINES),
) -> Dict[str, Any]:
    view = runtime.view
    if level is not None or module:
        lines = view.tail.filter(level=level, module=module)[-limit:]
    else:
        lines = view.tail.tail(limit)
    return {
        "service": view.tail_service,
        "total": len(view.tail),
        "scroll_offset": view.tail.scroll_offset,
        "lines": [line.model_dump(mode="json") for line in lines],
    }


@router.post(
    "/{service}/tail",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Open the detail view: start live-tailing one service.",
)
async def start_tail(service: str) -> Dict[str, Any]:
    with tracer.start_as_current_span("logs.start_tail") as span:
        span.set_attribute("fleetwatch.service", service)
        try:
            container = await runtime.inventory.get_container(service)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Container lookup for %s failed: %s", service, exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="container runtime unavailable",
            )
        if container is None:
            raise HTTPException(status_code=404, detail=f"unknown service {service!r}")

        runtime.view.open_tail(service)
        await runtime.scheduler.start_tail(service)
        return {"service": service, "tailing": True}


@router.delete(
    "/tail",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close the detail view and cancel the live tail.",
)
async def stop_tail() -> Response:
    await runtime.scheduler.stop_tail()
    runtime.view.close_tail()
    return Response(status_code=status.HTTP_204_NO_CONTENT)

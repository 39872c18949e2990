from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus exposition of fleetwatch's own metrics (default registry)."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

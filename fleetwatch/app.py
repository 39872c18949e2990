# fleetwatch/app.py

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OTEL + logging setup
from fleetwatch.utils.otel import setup_otel

# Routers (absolute imports)
from fleetwatch.routers.containers_router import router as containers_router
from fleetwatch.routers.transactions_router import router as transactions_router
from fleetwatch.routers.logs_router import router as logs_router
from fleetwatch.routers.metrics_router import router as metrics_router

# Refresh loops + consumer view
from fleetwatch.services import runtime
from fleetwatch.config import settings


app = FastAPI(
    title="fleetwatch",
    description="Real-time monitoring core for the containerized L1/L2 service fleet",
    version="0.1.0",
)

# ------------------------------------------------------------------
# OpenTelemetry
# ------------------------------------------------------------------
setup_otel(app)

# ------------------------------------------------------------------
# Prometheus Metrics
# ------------------------------------------------------------------
# Instrument HTTP request metrics, latency, etc.
Instrumentator().instrument(app)

# Expose our explicit /metrics endpoint
app.include_router(metrics_router)


# ------------------------------------------------------------------
# Business Routers
# ------------------------------------------------------------------
app.include_router(containers_router, prefix="/v1")
app.include_router(transactions_router, prefix="/v1")
app.include_router(logs_router, prefix="/v1")


# ------------------------------------------------------------------
# Lifecycle Events
# ------------------------------------------------------------------
@app.on_event("startup")
async def startup_event():
    """Ping the container runtime, then start refresh loops and the frame task."""
    await runtime.start()


@app.on_event("shutdown")
async def shutdown_event():
    await runtime.stop()


@app.get("/healthz")
def health_check():
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "project": settings.PROJECT,
        "loops_running": runtime.scheduler.running,
    }


def main() -> None:
    import uvicorn

    uvicorn.run(
        "fleetwatch.app:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()

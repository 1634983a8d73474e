from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from aquacrew.core.metrics import METRICS

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"


@router.get("/metrics", response_class=PlainTextResponse)
def metrics_endpoint():
    return PlainTextResponse(METRICS.export_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)

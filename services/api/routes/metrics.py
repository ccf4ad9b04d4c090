from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

router = APIRouter(tags=["metrics"])

@router.get("/metrics")
def get_prometheus_metrics(request: Request):
    # sinks without a registry expose nothing
    registry = getattr(request.app.state.sink, "registry", None) or CollectorRegistry()
    return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

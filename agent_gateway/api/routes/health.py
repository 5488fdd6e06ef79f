"""Health check endpoint."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...gateway import Gateway
from ..dependencies import get_gateway
from ..schemas import HealthResponse

router = APIRouter()


@router.get(
    "/api/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "A backing service is unreachable"}},
    summary="Health check",
    description="Report model runtime and database reachability. Returns 503 when degraded.",
)
def health_check(gateway: Gateway = Depends(get_gateway)) -> JSONResponse:
    """Aggregate the status of the gateway's backing services."""
    model_runtime = gateway.llm_client.health_check()
    database = gateway.store.health_check()
    healthy = model_runtime["connected"] and database["connected"]

    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        uptime=round(gateway.uptime, 3),
        agents={"loaded": len(gateway.agents), "list": list(gateway.agents)},
        model_runtime=model_runtime,
        database=database,
    )
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=body.model_dump(by_alias=True),
    )

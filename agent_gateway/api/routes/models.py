"""Model runtime listing endpoint."""

from fastapi import APIRouter, Depends

from ...errors import ServiceUnavailableError
from ...gateway import Gateway
from ...llm_client import ModelRuntimeError
from ..dependencies import get_gateway
from ..schemas import ErrorResponse

router = APIRouter()


@router.get(
    "/api/models",
    responses={503: {"model": ErrorResponse, "description": "Model runtime not reachable"}},
    summary="List models installed on the model runtime",
)
def list_models(gateway: Gateway = Depends(get_gateway)) -> dict:
    try:
        models = gateway.llm_client.list_models()
    except ModelRuntimeError as e:
        raise ServiceUnavailableError("Model runtime not reachable", details=e.message) from e
    return {"models": models}

import structlog
from fastapi import APIRouter, Depends, Request, Response

from imgopt.config import settings
from imgopt.core.exceptions import AppError, ObjectNotFoundError, UpstreamFetchError
from imgopt.schemas.images import ErrorResponse
from imgopt.services.optimizer import ImageOptimizer

logger = structlog.get_logger()

router = APIRouter()

TRANSFORM_ERROR_HEADER = "X-Transform-Error"


def get_optimizer(request: Request) -> ImageOptimizer:
    return request.app.state.optimizer


def _validate_key(key: str) -> None:
    if not key or ".." in key.split("/"):
        raise AppError(status_code=400, detail="Invalid key")


@router.get(
    "/{key:path}",
    response_class=Response,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def get_object(key: str, request: Request, optimizer: ImageOptimizer = Depends(get_optimizer)) -> Response:
    _validate_key(key)

    try:
        result = await optimizer.optimize(key, request.query_params)
    except ObjectNotFoundError:
        raise AppError(status_code=404, detail="Object not found")
    except UpstreamFetchError as e:
        logger.error("object_fetch_failed", key=key, error=str(e))
        raise AppError(status_code=502, detail="Failed to fetch original object")

    headers = {"Cache-Control": f"public, max-age={settings.cache_max_age}"}
    if result.error is not None:
        headers[TRANSFORM_ERROR_HEADER] = result.error.kind
    return Response(content=result.body, media_type=result.content_type, headers=headers)

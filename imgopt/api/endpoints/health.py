from fastapi import APIRouter

from imgopt.config import settings
from imgopt.schemas.images import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(storage=settings.storage_backend)

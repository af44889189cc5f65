from fastapi import APIRouter

from imgopt.api.endpoints import health, images

router = APIRouter()
router.include_router(health.router, tags=["health"])
router.include_router(images.router, tags=["images"])

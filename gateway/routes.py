from fastapi import APIRouter

from gateway.backend_proxy.route import router as backend_proxy_router

router = APIRouter()

# Include backend proxy router
router.include_router(backend_proxy_router)

from fastapi import APIRouter

from app.routers.areas import areas_router
from app.routers.cycles import cycles_router
from app.routers.shared import shared_router

main_router = APIRouter()
main_router.include_router(shared_router)
main_router.include_router(areas_router, prefix="/areas", tags=["Areas"])
main_router.include_router(cycles_router, prefix="/cycles", tags=["Cycles"])

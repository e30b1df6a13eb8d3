from fastapi import APIRouter

from bountycourt.api.v1.admin import router as admin_router
from bountycourt.api.v1.appeals import router as appeals_router
from bountycourt.api.v1.disputes import router as disputes_router
from bountycourt.api.v1.resolutions import router as resolutions_router

v1_router = APIRouter()

v1_router.include_router(disputes_router)
v1_router.include_router(resolutions_router)
v1_router.include_router(appeals_router)
v1_router.include_router(admin_router)

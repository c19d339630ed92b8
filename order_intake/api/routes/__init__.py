from fastapi import APIRouter

from order_intake.api.routes.control import router as control_router
from order_intake.api.routes.ops import router as ops_router

api_router = APIRouter()
api_router.include_router(control_router, tags=["control"])
api_router.include_router(ops_router, prefix="/ops", tags=["ops"])

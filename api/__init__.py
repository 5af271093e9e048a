from fastapi import APIRouter

from api.roles.routes import router as roles_router

api_router = APIRouter()

api_router.include_router(roles_router, prefix="/roles", tags=["roles"])

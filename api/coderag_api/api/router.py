from fastapi import APIRouter

from coderag_api.api.routes import health, tasks
from coderag_api.core.config import get_settings

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(tasks.router, prefix=f"{get_settings().api_prefix}/diff", tags=["diff"])

from fastapi import APIRouter

from src.flowsmith.api.v1 import automations, executions, schedules, vcs, versions

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(automations.router)
api_router.include_router(versions.router)
api_router.include_router(executions.router)
api_router.include_router(schedules.router)
api_router.include_router(vcs.router)

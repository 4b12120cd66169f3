from fastapi import APIRouter
from leads_sync.api import mappings, jobs, utils

api_router = APIRouter()

api_router.include_router(mappings.router)
api_router.include_router(jobs.router)
api_router.include_router(utils.router)

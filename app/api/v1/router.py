from fastapi import APIRouter

api_router = APIRouter()

from . import webhooks

api_router.include_router(webhooks.router)


@api_router.get("/status")
async def api_status():
    """API status endpoint"""
    return {"status": "API is running", "version": "v1"}

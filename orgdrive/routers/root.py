# Filename: orgdrive/routers/root.py
from fastapi import APIRouter
from ..config import settings

router = APIRouter()


@router.get("/", tags=["root"])
def root():
    """
    Root endpoint with app name, version, environment and health.
    """
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "environment": settings.environment,
        "status": "ok",
    }

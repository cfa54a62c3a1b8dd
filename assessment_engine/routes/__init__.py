"""
assessment_engine/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from assessment_engine.routes import sessions

router = APIRouter()

router.include_router(sessions.router)

"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from postgen.api.generation import router as generation_router
from postgen.api.similarity import router as similarity_router
from postgen.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(generation_router)
api_router.include_router(similarity_router)
api_router.include_router(health_router)

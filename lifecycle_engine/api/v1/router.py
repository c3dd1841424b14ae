"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from lifecycle_engine.api.v1 import automation, rules, transitions

api_router = APIRouter()

# Status transitions and integrity
api_router.include_router(transitions.router, tags=["Transitions"])

# Business rules
api_router.include_router(rules.router, prefix="/rules", tags=["Business Rules"])

# Automation
api_router.include_router(automation.router, prefix="/automation", tags=["Automation"])

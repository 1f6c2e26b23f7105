"""
API v1 router.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import audits, evidence, health, jobs, observations, sla_rules

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/v1/health)
api_router.include_router(health.router, tags=["health"])

api_router.include_router(audits.router, prefix="/audits", tags=["audits"])
api_router.include_router(observations.router, prefix="/observations", tags=["observations"])
# Evidence routes span /observations/{id}/... and /evidence/{id}/...
api_router.include_router(evidence.router, tags=["evidence"])
api_router.include_router(sla_rules.router, prefix="/sla-rules", tags=["sla-rules"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])

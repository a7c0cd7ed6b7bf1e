"""
Kindred — Main API Router

Aggregates all sub-routers under a single prefix so that ``app.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from app.api import calls, discovery, matching, safety

router = APIRouter()

router.include_router(matching.router, prefix="/match", tags=["Matching"])
router.include_router(discovery.router, prefix="/discover", tags=["Discovery"])
router.include_router(safety.router, prefix="/safety", tags=["Safety"])
router.include_router(calls.router, tags=["Presence & Calls"])

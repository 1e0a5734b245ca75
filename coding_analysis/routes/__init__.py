"""APIRouter registration for the coding analysis service."""

from __future__ import annotations

from fastapi import APIRouter

from coding_analysis.routes.coding_analysis import router as coding_analysis_router

api_router = APIRouter()
api_router.include_router(coding_analysis_router, tags=["CodingAnalysis"])

__all__ = ["api_router"]

"""FastAPI application package for the coding analysis service.

Exposes the application factory. Business logic lives in
`coding_analysis/logic/` and route handlers in `coding_analysis/routes/`.
"""

from __future__ import annotations

from coding_analysis.main import create_app

__all__ = ["create_app"]

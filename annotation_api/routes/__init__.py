"""
Routes package for the annotation API.
"""

from annotation_api.routes.rules import router as rules_router
from annotation_api.routes.projects import router as projects_router

__all__ = ["rules_router", "projects_router"]

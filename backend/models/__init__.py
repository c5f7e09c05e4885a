"""
Pydantic models for the annotation service.

All data shapes defined here. No imports from services or routes.
"""

from backend.models.annotation import (
    AIInfo,
    AnnotateRequest,
    AnnotateResponse,
    HealthResponse,
    TutorialListResponse,
)

__all__ = [
    "AnnotateRequest",
    "AnnotateResponse",
    "AIInfo",
    "HealthResponse",
    "TutorialListResponse",
]

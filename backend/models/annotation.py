"""Annotation request / response models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class AnnotateRequest(BaseModel):
    """What the tutorial UI sends to POST /annotate."""

    model_config = {"populate_by_name": True}

    action: str | None = None
    selected_text: str | None = Field(default=None, alias="selectedText", max_length=10000)
    context: str = Field(default="", max_length=50000)
    tutorial_id: str | None = Field(default=None, alias="tutorialId")
    question: str | None = Field(default=None, max_length=2000)


class AnnotateResponse(BaseModel):
    """What the annotate endpoint returns."""

    model_config = {"populate_by_name": True}

    success: bool = True
    action: str
    tutorial_id: str = Field(alias="tutorialId")
    selected_text: str = Field(alias="selectedText")
    updated_content: dict[str, Any] = Field(alias="updatedContent")


class AIInfo(BaseModel):
    provider: str
    model: str
    has_api_key: bool = Field(alias="hasApiKey")

    model_config = {"populate_by_name": True}


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    ai: AIInfo


class TutorialListResponse(BaseModel):
    tutorials: list[str]

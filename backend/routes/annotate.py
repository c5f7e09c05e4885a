"""Annotation routes — health, tutorial listing, and annotate."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from backend.config import settings
from backend.models.annotation import (
    AIInfo,
    AnnotateRequest,
    AnnotateResponse,
    HealthResponse,
    TutorialListResponse,
)
from backend.services.annotator import ACTIONS, CompletionClient, generate_annotation, insert_annotation
from backend.services.anthropic_client import AnthropicClient
from backend.services.content_store import ContentStore, TutorialNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["annotations"])

_llm: AnthropicClient | None = None


def get_llm() -> CompletionClient:
    """Shared Anthropic client, created on first use."""
    global _llm
    if _llm is None:
        _llm = AnthropicClient(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.ANNOTATION_MODEL,
            max_tokens=settings.ANNOTATION_MAX_TOKENS,
        )
    return _llm


_store: ContentStore | None = None


def get_content_store() -> ContentStore:
    """Shared store, so every request sees the same per-tutorial locks."""
    global _store
    if _store is None:
        _store = ContentStore(settings.CONTENT_DIR)
    return _store


@router.get("/health")
async def health() -> HealthResponse:
    """Health check with the configured AI provider."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        ai=AIInfo(
            provider=settings.AI_PROVIDER,
            model=settings.ANNOTATION_MODEL,
            has_api_key=bool(settings.ANTHROPIC_API_KEY),
        ),
    )


@router.get("/tutorials")
async def list_tutorials(store: ContentStore = Depends(get_content_store)) -> TutorialListResponse:
    """Ids of every tutorial in the content directory."""
    try:
        ids = await store.alist_ids()
    except OSError as e:
        logger.exception("annotate: cannot list %s", store.content_dir)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)) from e
    return TutorialListResponse(tutorials=ids)


async def _load_or_404(store: ContentStore, tutorial_id: str) -> dict:
    try:
        return await store.aload(tutorial_id)
    except TutorialNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Tutorial not found: {tutorial_id}"
        ) from None


@router.post("/annotate")
async def annotate(
    req: AnnotateRequest,
    llm: CompletionClient = Depends(get_llm),
    store: ContentStore = Depends(get_content_store),
) -> AnnotateResponse:
    """
    Generate an annotation for the selected text and splice it into the tutorial.

    The updated document is written back to the content directory and
    returned so the reader's session can re-seed from it.
    """
    if not req.action or not req.selected_text or not req.tutorial_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
    if req.action not in ACTIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Action must be explain, branch, or ask")
    if req.action == "ask" and not req.question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question is required for ask action")

    logger.info("annotate: %s in %s: %r", req.action, req.tutorial_id, req.selected_text[:50])

    document = await _load_or_404(store, req.tutorial_id)

    # The LLM call runs unlocked; the file is re-read under the lock so a
    # concurrent annotation saved meanwhile is kept.
    annotation = await generate_annotation(
        llm,
        req.action,
        req.selected_text,
        req.context,
        document.get("title"),
        req.question,
    )

    async with store.lock_for(req.tutorial_id):
        document = await _load_or_404(store, req.tutorial_id)
        updated, annotation_id = insert_annotation(document, req.selected_text, annotation)
        try:
            await store.asave(req.tutorial_id, updated)
        except OSError as e:
            logger.exception("annotate: cannot save %s", req.tutorial_id)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)) from e

    logger.info("annotate: added %s to %s", annotation_id, req.tutorial_id)
    return AnnotateResponse(
        action=req.action,
        tutorial_id=req.tutorial_id,
        selected_text=req.selected_text,
        updated_content=updated,
    )

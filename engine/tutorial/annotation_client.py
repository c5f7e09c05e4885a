"""HTTP annotation hook: forwards a session's annotation requests to the annotation service."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from engine.tutorial.types import AnnotationRequest, Document

logger = logging.getLogger(__name__)


class AnnotationServiceError(Exception):
    """The annotation service answered with an error or an unusable body."""


class AnnotationClient:
    """
    Async client for the annotation service.

    Instances are callable, so one can be passed straight to
    DocumentSession(on_annotation_request=...).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __call__(self, request: AnnotationRequest) -> Document:
        return await self.annotate(request)

    async def annotate(self, request: AnnotationRequest) -> Document:
        """
        POST the request to /annotate and return the updated tutorial.

        Raises AnnotationServiceError on a non-2xx answer or a body without
        `updatedContent`. The session catches and logs it.
        """
        payload: dict[str, Any] = {
            "action": request.action,
            "selectedText": request.selected_text,
            "context": request.context,
            "tutorialId": request.document_id,
        }
        if request.question is not None:
            payload["question"] = request.question

        logger.info("annotation_client: %s for %s", request.action, request.document_id)
        res = await self.client.post("/annotate", json=payload)
        if res.is_error:
            raise AnnotationServiceError(f"{res.status_code}: {_error_message(res)}")

        body = res.json()
        updated = body.get("updatedContent") if isinstance(body, dict) else None
        if not isinstance(updated, dict):
            raise AnnotationServiceError("Response has no updatedContent")
        return Document.from_dict(updated)

    async def health(self) -> dict[str, Any]:
        res = await self.client.get("/health")
        res.raise_for_status()
        return res.json()

    async def list_tutorials(self) -> list[str]:
        res = await self.client.get("/tutorials")
        res.raise_for_status()
        return list(res.json().get("tutorials", []))

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> AnnotationClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _error_message(res: httpx.Response) -> str:
    try:
        body = res.json()
    except ValueError:
        return res.text
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)

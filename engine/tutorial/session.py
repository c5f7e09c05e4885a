"""
Tutorial Engine — Document Session

One live tutorial: a Document, its StateStore, a registry, and the last render.

Lifecycle:
  created  → store seeded from a copy of document.state, first render
  write    → store notifies → one re-render → on_render listeners
  reseed   → content and state swapped wholesale, generation bumped
  close    → unsubscribed; later writes and annotation responses ignored

The annotation hook is the only asynchronous edge. A response that comes back
after a reseed or after close() belongs to a document the reader no longer
sees and is dropped.
"""

from __future__ import annotations

import copy
import inspect
import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Awaitable, Callable

from engine.tutorial.registry import ComponentRegistry
from engine.tutorial.renderer import render
from engine.tutorial.state import StateStore
from engine.tutorial.types import (
    ANNOTATION_ACTIONS,
    AnnotationRequest,
    Document,
    DocumentError,
    Node,
    RenderResult,
    normalize_node,
)

logger = logging.getLogger(__name__)

AnnotationResponse = Document | dict[str, Any] | None
AnnotationHook = Callable[[AnnotationRequest], AnnotationResponse | Awaitable[AnnotationResponse]]
RenderListener = Callable[[RenderResult], None]


class DocumentSession:
    """A reader's live view of one tutorial document."""

    def __init__(
        self,
        document: Document | dict[str, Any],
        *,
        registry: ComponentRegistry | None = None,
        on_annotation_request: AnnotationHook | None = None,
    ) -> None:
        self.registry = registry if registry is not None else ComponentRegistry.with_builtins()
        self.on_annotation_request = on_annotation_request
        self.generation = 0
        self.render_count = 0
        self.closed = False
        self.last_result: RenderResult | None = None
        self._listeners: list[RenderListener] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._seed(document)
        self.render()

    # -- seeding ---------------------------------------------------------------

    def _seed(self, document: Document | dict[str, Any]) -> None:
        if not isinstance(document, Document):
            document = Document.from_dict(document)
        try:
            content = normalize_node(copy.deepcopy(document.content))
        except RecursionError:
            raise DocumentError("'content' is nested too deeply") from None
        self.document = document
        self._content = content
        if self._unsubscribe is not None:
            self._unsubscribe()
        self.store = StateStore(copy.deepcopy(document.state))
        self._unsubscribe = self.store.subscribe(self._on_state_change)

    def reseed(self, document: Document | dict[str, Any]) -> RenderResult | None:
        """
        Replace content and state wholesale. Nothing from the old store survives.
        Returns the new render, or None if the session is closed.
        """
        if self.closed:
            logger.info("session %s: reseed ignored, session closed", self.document.id)
            return None
        self._seed(document)
        self.generation += 1
        logger.info("session %s: reseeded (generation %d)", self.document.id, self.generation)
        return self.render()

    # -- state -----------------------------------------------------------------

    @property
    def state(self) -> Mapping[str, Any]:
        return self.store.snapshot()

    @property
    def content(self) -> Node | Any:
        return self._content

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(key, default)

    def set_state(self, key: str, value: Any) -> None:
        if self.closed:
            logger.info("session %s: write to %r ignored, session closed", self.document.id, key)
            return
        self.store.set(key, value)

    def update_state(self, values: Mapping[str, Any]) -> None:
        if self.closed:
            logger.info("session %s: update ignored, session closed", self.document.id)
            return
        self.store.update(values)

    @contextmanager
    def batch(self) -> Iterator[DocumentSession]:
        """Collapse the writes made inside the block into one re-render."""
        with self.store.batch():
            yield self

    def _writer(self, generation: int) -> Callable[[str, Any], None]:
        """Writer for one render's handlers. Dropped once the session is re-seeded."""

        def write(key: str, value: Any) -> None:
            if generation != self.generation:
                logger.info(
                    "session %s: stale write to %r ignored (generation %d, now %d)",
                    self.document.id,
                    key,
                    generation,
                    self.generation,
                )
                return
            self.set_state(key, value)

        return write

    def _on_state_change(self, snapshot: Mapping[str, Any]) -> None:
        if self.closed:
            return
        self.render()

    # -- rendering -------------------------------------------------------------

    def render(self) -> RenderResult:
        """Render the current content against the current state."""
        tree: Any = self._content
        if self.on_annotation_request is not None:
            tree = Node(type="AnnotatableContent", props={}, children=tree)
        result = render(
            tree,
            self.store,
            self.registry,
            write=self._writer(self.generation),
            annotate=self._annotate_from_view,
            document_id=self.document.id,
        )
        self.last_result = result
        self.render_count += 1
        if result.diagnostics:
            logger.debug(
                "session %s: render %d produced %d diagnostics",
                self.document.id,
                self.render_count,
                len(result.diagnostics),
            )
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("session %s: render listener %r failed", self.document.id, listener)
        return result

    def on_render(self, listener: RenderListener) -> Callable[[], None]:
        """Subscribe to every completed render. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- annotations -----------------------------------------------------------

    def _annotate_from_view(
        self, action: str, selected_text: str, context: str = "", question: str | None = None
    ) -> Awaitable[bool]:
        # Called from an element's `action` handler; the host awaits the coroutine
        return self.request_annotation(action, selected_text, context, question)

    async def request_annotation(
        self,
        action: str,
        selected_text: str,
        context: str = "",
        question: str | None = None,
    ) -> bool:
        """
        Forward an annotation request to the hook and apply its response.

        Returns True when a replacement document was applied. Stale responses
        (session reseeded or closed meanwhile), empty responses, and hook
        failures all return False and leave the session unchanged.
        """
        if self.closed:
            logger.info("session %s: annotation request ignored, session closed", self.document.id)
            return False
        if self.on_annotation_request is None:
            logger.info("session %s: no annotation hook configured", self.document.id)
            return False
        if action not in ANNOTATION_ACTIONS:
            logger.warning("session %s: unknown annotation action %r", self.document.id, action)
            return False

        request = AnnotationRequest(
            action=action,
            selected_text=selected_text,
            context=context,
            document_id=self.document.id,
            question=question,
            generation=self.generation,
        )
        logger.info("session %s: requesting %s annotation", self.document.id, action)
        try:
            response = self.on_annotation_request(request)
            if inspect.isawaitable(response):
                response = await response
        except Exception:
            logger.exception("session %s: annotation hook failed", self.document.id)
            return False

        return self.apply_annotation_response(request, response)

    def apply_annotation_response(self, request: AnnotationRequest, response: AnnotationResponse) -> bool:
        if self.closed or request.generation != self.generation:
            logger.info(
                "session %s: stale annotation response ignored (generation %d, now %d)",
                self.document.id,
                request.generation,
                self.generation,
            )
            return False
        if response is None:
            return False
        try:
            document = response if isinstance(response, Document) else Document.from_dict(response)
        except ValueError:
            logger.exception("session %s: annotation response is not a document", self.document.id)
            return False
        self.reseed(document)
        return True

    # -- teardown --------------------------------------------------------------

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._listeners.clear()
        logger.info("session %s: closed", self.document.id)

    def __repr__(self) -> str:
        return f"DocumentSession(id={self.document.id!r}, generation={self.generation}, closed={self.closed})"

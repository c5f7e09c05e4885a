"""
Tutorial Engine — interactive, state-driven tutorial documents.

Five components:
  state        — StateStore: flat key → value store with change notification
  expressions  — evaluate(expr, state): safe arithmetic/logic over state, never raises
  registry     — ComponentRegistry: node type → renderer, extensible at runtime
  renderer     — render(tree, state, registry) → RenderResult  (pure, deterministic)
  session      — DocumentSession: document + store + re-render loop + annotation hook

Adapter:
  annotation_client — AnnotationClient, an HTTP annotation hook for sessions
"""

from engine.tutorial.expressions import EvaluationError, evaluate, is_error, truthy
from engine.tutorial.formatting import display_value, format_value
from engine.tutorial.registry import ComponentRegistry
from engine.tutorial.renderer import RenderContext, render, to_html
from engine.tutorial.session import DocumentSession
from engine.tutorial.state import StateStore
from engine.tutorial.types import (
    AnnotationRequest,
    Diagnostic,
    Document,
    DocumentError,
    Element,
    Node,
    Renderer,
    RenderResult,
    normalize_node,
)

__all__ = [
    "StateStore",
    "evaluate",
    "is_error",
    "truthy",
    "EvaluationError",
    "format_value",
    "display_value",
    "ComponentRegistry",
    "Renderer",
    "render",
    "to_html",
    "RenderContext",
    "DocumentSession",
    "Document",
    "DocumentError",
    "Node",
    "normalize_node",
    "Element",
    "Diagnostic",
    "RenderResult",
    "AnnotationRequest",
]

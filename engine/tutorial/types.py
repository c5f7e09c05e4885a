"""
Tutorial Engine — Shared Types

Data classes used across the state store, evaluator, registry, renderer, and session.
These are the contracts that bind the engine together.

Content tree shape (as loaded from tutorial JSON):
- a node is a string, a number, a list of nodes, or {type, props?, children?}
- children may sit on the node or inside props.children (node field wins)
- normalize_node() collapses both locations into one canonical `children` field
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable

from engine.tutorial.formatting import display_value

# ---------------------------------------------------------------------------
# Renderer kinds
# ---------------------------------------------------------------------------

KIND_STRUCTURAL = "structural"
KIND_DISPLAY = "display"
KIND_COMPUTED = "computed"
KIND_NUMERIC = "numeric"
KIND_BOOLEAN = "boolean"
KIND_CONDITIONAL = "conditional"
KIND_ANNOTATION = "annotation"
KIND_WIDGET = "widget"

RENDERER_KINDS: set[str] = {
    KIND_STRUCTURAL,
    KIND_DISPLAY,
    KIND_COMPUTED,
    KIND_NUMERIC,
    KIND_BOOLEAN,
    KIND_CONDITIONAL,
    KIND_ANNOTATION,
    KIND_WIDGET,
}

# Kinds that get their children rendered by the tree walker before they run.
# Everything else receives raw props/children and resolves state itself.
PRERENDER_KINDS: set[str] = {KIND_STRUCTURAL, KIND_ANNOTATION, KIND_WIDGET}

# Diagnostic codes
MISSING_TYPE = "MISSING_TYPE"
EVALUATION_ERROR = "EVALUATION_ERROR"
CONDITION_ERROR = "CONDITION_ERROR"
RENDER_ERROR = "RENDER_ERROR"

ANNOTATION_ACTIONS: set[str] = {"explain", "visualize", "branch", "ask"}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DocumentError(ValueError):
    """A tutorial document is structurally unusable (not an object, bad state bag)."""


# ---------------------------------------------------------------------------
# Content tree
# ---------------------------------------------------------------------------


@dataclass
class Node:
    """
    One typed element of the content tree, after normalization.

    `type` is None when the source object had no usable type. Such a node is
    kept so the renderer can report it, and it renders as nothing.
    """

    type: str | None
    props: dict[str, Any] = field(default_factory=dict)
    children: Any = None

    @property
    def valid(self) -> bool:
        return isinstance(self.type, str) and self.type != ""

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type}
        if self.props:
            d["props"] = copy.deepcopy(self.props)
        if self.children is not None:
            d["children"] = _children_to_json(self.children)
        return d


def _children_to_json(children: Any) -> Any:
    if isinstance(children, Node):
        return children.to_dict()
    if isinstance(children, list):
        return [_children_to_json(c) for c in children]
    return children


def normalize_node(raw: Any) -> Any:
    """
    Normalize a raw JSON content tree into Node objects.

    - strings and numbers stay as they are
    - None and booleans become None (they render as nothing)
    - lists are normalized element by element, order preserved
    - objects become Node with children taken from the node field when present,
      else from props.children, and `children` stripped from props
    - Node instances pass through unchanged

    The input is never mutated.
    """
    if isinstance(raw, Node):
        return raw
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (str, int, float)):
        return raw
    if isinstance(raw, (list, tuple)):
        return [normalize_node(item) for item in raw]
    if isinstance(raw, dict):
        props = raw.get("props")
        if not isinstance(props, dict):
            props = {}
        if "children" in raw and raw["children"] is not None:
            children = raw["children"]
        else:
            children = props.get("children")
        node_type = raw.get("type")
        return Node(
            type=node_type if isinstance(node_type, str) and node_type else None,
            props={k: v for k, v in props.items() if k != "children"},
            children=normalize_node(children),
        )
    # Anything else (sets, objects) is not part of the JSON node grammar
    return None


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


@dataclass
class Document:
    """
    One tutorial as loaded from JSON. Treated as immutable input:
    sessions copy what they need and never write back into it.
    """

    id: str
    title: str
    state: dict[str, Any] = field(default_factory=dict)
    content: Any = None
    subtitle: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "state": dict(self.state),
            "content": _children_to_json(copy.deepcopy(self.content)),
        }
        if self.subtitle is not None:
            d["subtitle"] = self.subtitle
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Document:
        if not isinstance(d, dict):
            raise DocumentError(f"Document must be an object, got {type(d).__name__}")
        state = d.get("state") or {}
        if not isinstance(state, dict):
            raise DocumentError("'state' must be an object")
        for key in state:
            if not isinstance(key, str):
                raise DocumentError(f"State keys must be strings, got {key!r}")
        try:
            content = copy.deepcopy(d.get("content"))
        except RecursionError:
            raise DocumentError("'content' is nested too deeply") from None
        return cls(
            id=str(d.get("id", "")),
            title=str(d.get("title", "")),
            state=dict(state),
            content=content,
            subtitle=d.get("subtitle"),
        )


# ---------------------------------------------------------------------------
# Render output
# ---------------------------------------------------------------------------


@dataclass
class Element:
    """
    One rendered element: an intrinsic tag with attributes and rendered children.

    `handlers` holds interaction callbacks (change, toggle, action, open).
    They are closures created per render, so they are left out of equality.
    """

    tag: str
    props: dict[str, Any] = field(default_factory=dict)
    children: list[Any] = field(default_factory=list)
    handlers: dict[str, Callable[..., Any]] = field(default_factory=dict, compare=False, repr=False)

    def find(self, predicate: Callable[[Element], bool]) -> Element | None:
        """Depth-first search for the first element (self included) matching predicate."""
        if predicate(self):
            return self
        for child in self.children:
            found = _find_in(child, predicate)
            if found is not None:
                return found
        return None

    def find_all(self, predicate: Callable[[Element], bool]) -> list[Element]:
        out: list[Element] = []
        _collect(self, predicate, out)
        return out

    def text(self) -> str:
        """Concatenated text content, in document order."""
        return "".join(_text_of(c) for c in self.children)


def _find_in(output: Any, predicate: Callable[[Element], bool]) -> Element | None:
    if isinstance(output, Element):
        return output.find(predicate)
    if isinstance(output, list):
        for item in output:
            found = _find_in(item, predicate)
            if found is not None:
                return found
    return None


def _collect(output: Any, predicate: Callable[[Element], bool], out: list[Element]) -> None:
    if isinstance(output, Element):
        if predicate(output):
            out.append(output)
        for child in output.children:
            _collect(child, predicate, out)
    elif isinstance(output, list):
        for item in output:
            _collect(item, predicate, out)


def _text_of(output: Any) -> str:
    if isinstance(output, Element):
        return output.text()
    if isinstance(output, list):
        return "".join(_text_of(c) for c in output)
    if output is None:
        return ""
    return display_value(output)


def as_children(output: Any) -> list[Any]:
    """Flatten rendered output into an element's child list, dropping empties."""
    if output is None:
        return []
    if isinstance(output, list):
        out: list[Any] = []
        for item in output:
            out.extend(as_children(item))
        return out
    return [output]


def error_marker(message: Any) -> Element:
    """Visible inline marker shown in place of a component that failed."""
    return Element(
        tag="span",
        props={"className": "tutorial-error", "role": "alert"},
        children=[f"[Error: {message}]"],
    )


# ---------------------------------------------------------------------------
# Registered renderers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Renderer:
    """
    A registered component implementation.

    `render(props, children, ctx)` returns rendered output. For pass-through kinds
    (structural, annotation, widget) `children` is the already-rendered child list;
    for state-bound kinds it is the raw normalized child node(s).
    """

    render: Callable[[dict[str, Any], Any, Any], Any]
    kind: str = KIND_WIDGET

    def __post_init__(self) -> None:
        if self.kind not in RENDERER_KINDS:
            raise ValueError(f"Unknown renderer kind: {self.kind!r}")
        if not callable(self.render):
            raise TypeError("Renderer.render must be callable")

    @property
    def prerenders_children(self) -> bool:
        return self.kind in PRERENDER_KINDS


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class Diagnostic:
    """A non-fatal issue encountered while rendering one node."""

    code: str
    message: str
    details: dict[str, Any] | None = None


@dataclass
class RenderResult:
    """
    Result of rendering a tree against one state snapshot.
    The renderer never throws — it always returns one of these.
    """

    output: Any
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass
class AnnotationRequest:
    """What an annotation affordance forwards to the session's hook."""

    action: str
    selected_text: str
    context: str
    document_id: str
    question: str | None = None
    generation: int = 0

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "action": self.action,
            "selectedText": self.selected_text,
            "context": self.context,
            "documentId": self.document_id,
        }
        if self.question is not None:
            d["question"] = self.question
        return d

"""
Tutorial Engine — Tree Renderer

Pure function: (content tree, state snapshot, registry) → RenderResult
No AI. No IO. Deterministic: same tree + same state → equal output, always.

Walk, at every step:
  1. string / number      → emitted as-is
  2. None / boolean       → nothing
  3. list                 → each element, in document order
  4. {type, props, children}
       - no type          → nothing, one MISSING_TYPE diagnostic
       - unregistered     → passthrough: intrinsic element, literal props, rendered children
       - registered       → the renderer runs. Pass-through kinds get their children
                            rendered first; state-bound kinds get raw props and raw
                            children and evaluate bind/compute/when themselves,
                            lazily, through the RenderContext.

Failures stay inside the node that caused them. Nothing raises out of render().

to_html() serializes the output tree to an HTML fragment.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from html import escape as _html_escape
from typing import Any, Callable

from engine.tutorial.expressions import evaluate
from engine.tutorial.formatting import display_value
from engine.tutorial.registry import ComponentRegistry
from engine.tutorial.state import StateStore
from engine.tutorial.types import (
    MISSING_TYPE,
    RENDER_ERROR,
    Diagnostic,
    Element,
    Node,
    RenderResult,
    as_children,
    error_marker,
    normalize_node,
)

logger = logging.getLogger(__name__)

Writer = Callable[[str, Any], None]
Reader = Callable[..., Any]
AnnotateHook = Callable[..., Any]

# ---------------------------------------------------------------------------
# Render context
# ---------------------------------------------------------------------------


class RenderContext:
    """
    Everything a component needs during one render pass: the state snapshot,
    the registry, a way to write state and request annotations, and the
    diagnostics list for this pass.
    """

    def __init__(
        self,
        state: Mapping[str, Any],
        registry: ComponentRegistry,
        *,
        write: Writer | None = None,
        read: Reader | None = None,
        annotate: AnnotateHook | None = None,
        document_id: str = "",
    ) -> None:
        self.state = state
        self.registry = registry
        self.document_id = document_id
        self.diagnostics: list[Diagnostic] = []
        self._write = write
        self._read = read
        self._annotate = annotate

    def render(self, node: Any) -> Any:
        """Render a child node (or raw node dict, or list) with this context."""
        return render_node(node, self)

    def get(self, key: Any, default: Any = None) -> Any:
        """Value of a state key in this render's snapshot."""
        if not isinstance(key, str):
            return default
        value = self.state.get(key)
        return default if value is None else value

    def current(self, key: str, default: Any = None) -> Any:
        """
        Live value of a state key at the time of the call.
        Handlers use this so a handler from an older render still sees fresh state.
        """
        value = self._read(key) if self._read is not None else self.state.get(key)
        return default if value is None else value

    def evaluate(self, expression: Any) -> Any:
        return evaluate(expression, self.state)

    def write(self, key: Any, value: Any) -> None:
        if not isinstance(key, str) or not key:
            logger.warning("renderer: control has no usable 'bind' key: %r", key)
            return
        if self._write is None:
            logger.warning("renderer: write to %r ignored, render has no state writer", key)
            return
        self._write(key, value)

    def annotate(
        self,
        action: str,
        selected_text: str,
        context: str = "",
        question: str | None = None,
    ) -> Any:
        """Forward an annotation request to the hook. Returns whatever the hook returns."""
        if self._annotate is None:
            logger.info("renderer: annotation %r requested but no hook is configured", action)
            return None
        return self._annotate(action, selected_text, context, question)

    def diagnose(self, code: str, message: str, **details: Any) -> None:
        self.diagnostics.append(Diagnostic(code=code, message=message, details=details or None))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def render(
    tree: Any,
    state: Mapping[str, Any] | StateStore | None = None,
    registry: ComponentRegistry | None = None,
    *,
    write: Writer | None = None,
    annotate: AnnotateHook | None = None,
    document_id: str = "",
) -> RenderResult:
    """
    Render a content tree against one state snapshot.

    `state` may be a plain mapping or a StateStore; with a store, controls
    write back into it unless an explicit `write` is given.
    Pure function. Never raises.
    """
    read: Reader | None = None
    if isinstance(state, StateStore):
        store = state
        snapshot: Mapping[str, Any] = store.snapshot()
        read = store.get
        if write is None:
            write = store.set
    else:
        snapshot = state if state is not None else {}

    ctx = RenderContext(
        snapshot,
        registry if registry is not None else ComponentRegistry.with_builtins(),
        write=write,
        read=read,
        annotate=annotate,
        document_id=document_id,
    )
    try:
        output = render_node(normalize_node(tree), ctx)
    except RecursionError:
        logger.warning("renderer: document %r nested too deeply to render", document_id)
        ctx.diagnose(RENDER_ERROR, "Content nested too deeply")
        output = error_marker("Content nested too deeply")
    return RenderResult(output=output, diagnostics=ctx.diagnostics)


def render_node(node: Any, ctx: RenderContext) -> Any:
    """Render one node recursively. See module docstring for the walk."""
    if node is None or isinstance(node, bool):
        return None

    if isinstance(node, (str, int, float)):
        return node

    if isinstance(node, list):
        return [render_node(child, ctx) for child in node]

    if not isinstance(node, Node):
        # Raw node dicts reach here from props (e.g. a conditional's `otherwise`)
        node = normalize_node(node)
        if not isinstance(node, Node):
            return render_node(node, ctx)

    if not node.valid:
        logger.warning("renderer: node missing type: %r", node.props)
        ctx.diagnose(MISSING_TYPE, "Element missing type", props=node.props)
        return None

    resolved = ctx.registry.resolve(node.type)

    if isinstance(resolved, str):
        return Element(
            tag=resolved,
            props=dict(node.props),
            children=as_children(render_node(node.children, ctx)),
        )

    if resolved.prerenders_children:
        children: Any = as_children(render_node(node.children, ctx))
    else:
        children = node.children

    try:
        return resolved.render(dict(node.props), children, ctx)
    except RecursionError:
        raise
    except Exception as e:
        logger.exception("renderer: component %r failed", node.type)
        ctx.diagnose(RENDER_ERROR, f"{node.type}: {e}", type=node.type)
        return error_marker(str(e))


# ---------------------------------------------------------------------------
# HTML serialization
# ---------------------------------------------------------------------------

VOID_TAGS: set[str] = {
    "area",
    "br",
    "col",
    "embed",
    "hr",
    "img",
    "input",
    "link",
    "meta",
    "source",
    "track",
    "wbr",
}

_TAG_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")
_ATTR_RE = re.compile(r"^[A-Za-z_:][A-Za-z0-9_:.-]*$")

_ATTR_ALIASES = {"className": "class", "htmlFor": "for"}

# Props that are data for the renderer, not markup
_SKIPPED_ATTRS = {"key", "children", "dangerouslySetInnerHTML"}


def to_html(output: Any) -> str:
    """
    Serialize rendered output to an HTML fragment.
    Deterministic: attributes in insertion order, text escaped.
    """
    if output is None or isinstance(output, bool):
        return ""
    if isinstance(output, str):
        return escape(output)
    if isinstance(output, (int, float)):
        return escape(display_value(output))
    if isinstance(output, list):
        return "".join(to_html(item) for item in output)
    if isinstance(output, Element):
        return _element_html(output)
    if isinstance(output, Node):
        return escape(json.dumps(output.to_dict(), sort_keys=True))
    return escape(str(output))


def _element_html(el: Element) -> str:
    inner = "".join(to_html(child) for child in el.children)
    if not _TAG_RE.match(el.tag):
        # Not a markup name (e.g. a component type nobody registered with odd characters)
        return inner
    attrs = _render_attrs(el.props)
    tag = el.tag
    if tag.lower() in VOID_TAGS:
        return f"<{tag}{attrs}>"
    return f"<{tag}{attrs}>{inner}</{tag}>"


def _render_attrs(props: dict[str, Any]) -> str:
    parts: list[str] = []
    for name, value in props.items():
        if name in _SKIPPED_ATTRS or not _ATTR_RE.match(name):
            continue
        if name.lower().startswith("on"):
            continue
        attr = _ATTR_ALIASES.get(name, name)
        if value is None or value is False:
            continue
        if value is True:
            parts.append(f" {attr}")
            continue
        parts.append(f' {attr}="{escape(_attr_value(value))}"')
    return "".join(parts)


def _attr_value(value: Any) -> str:
    if isinstance(value, dict):
        return "; ".join(f"{_css_name(k)}: {display_value(v)}" for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return " ".join(display_value(v) for v in value)
    return display_value(value)


def _css_name(name: str) -> str:
    # fontSize → font-size
    return re.sub(r"(?<!^)(?=[A-Z])", "-", str(name)).lower()


def escape(text: str) -> str:
    """HTML-escape user content."""
    return _html_escape(str(text), quote=True)

"""
Tutorial Engine — Built-in Components

The component vocabulary every registry starts with (ComponentRegistry.with_builtins).
Each renderer has the signature (props, children, ctx) → output.

State-bound:
  StateValue        display      reads `bind`, applies `format`, never writes
  StateComputed     computed     evaluates `compute` each render; inline error marker on failure
  Slider            numeric      reads/writes `bind`, clamped to [min, max]
  NumberInput       numeric      same contract, bounds optional
  Toggle            boolean      reads `bind` (default false), writes the negation
  StateConditional  conditional  `when` truthy → children, falsy → `otherwise`, error → nothing

Structural (children arrive pre-rendered):
  Fragment, Box, Card, Callout, Code, Math, Section, DeepDive,
  Blockquote, Analogy, Formula, Example, Steps, DefinitionList,
  ComparisonTable, KeyValue

Annotation affordances (children pre-rendered, expose an `action` handler):
  Annotation, FootnoteAnnotation, AnnotationMarker, AnnotatableContent
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Callable

from engine.tutorial.expressions import is_error, truthy
from engine.tutorial.formatting import display_value, format_value
from engine.tutorial.types import (
    CONDITION_ERROR,
    EVALUATION_ERROR,
    KIND_ANNOTATION,
    KIND_BOOLEAN,
    KIND_COMPUTED,
    KIND_CONDITIONAL,
    KIND_DISPLAY,
    KIND_NUMERIC,
    KIND_STRUCTURAL,
    Element,
    Renderer,
    as_children,
    error_marker,
)

if TYPE_CHECKING:
    from engine.tutorial.renderer import RenderContext

logger = logging.getLogger(__name__)

CALLOUT_ICONS: dict[str, str] = {
    "info": "💡",
    "warning": "⚠️",
    "success": "✅",
    "tip": "🎯",
}

ANNOTATION_ICONS: dict[str, str] = {
    "explain": "💡",
    "visualize": "📊",
    "branch": "🌿",
}

# Markup props copied through from a structural node onto its element
_PASSED_ATTRS = ("id", "style", "title")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cls(base: str, props: dict[str, Any]) -> str:
    extra = props.get("className")
    if isinstance(extra, str) and extra.strip():
        return f"{base} {extra.strip()}"
    return base


def _attrs(base: str, props: dict[str, Any], *skip: str) -> dict[str, Any]:
    attrs: dict[str, Any] = {"className": _cls(base, props)}
    for name in _PASSED_ATTRS:
        if name in skip:
            continue
        if props.get(name) is not None:
            attrs[name] = props[name]
    return attrs


def _number(value: Any, default: float | None) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return default
        return value
    return default


def _coerce_number(raw: Any) -> float | None:
    """Parse a control's raw input. Returns None when it is not a usable number."""
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else None
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
        if not math.isfinite(value):
            return None
        return int(value) if value.is_integer() and "." not in text and "e" not in text.lower() else value
    return None


def _clamp(value: float, low: float | None, high: float | None) -> float:
    if low is not None and value < low:
        return low
    if high is not None and value > high:
        return high
    return value


def _numeric_writer(
    ctx: RenderContext, bind: Any, low: float | None, high: float | None, type_name: str
) -> Callable[[Any], None]:
    def on_change(raw: Any) -> None:
        value = _coerce_number(raw)
        if value is None:
            logger.warning("%s: ignoring non-numeric input %r for %r", type_name, raw, bind)
            return
        ctx.write(bind, _clamp(value, low, high))

    return on_change


def _action_handler(ctx: RenderContext, default_text: str = "") -> Callable[..., Any]:
    def on_action(
        action: str,
        selected_text: str | None = None,
        context: str = "",
        question: str | None = None,
    ) -> Any:
        return ctx.annotate(action, selected_text or default_text, context, question)

    return on_action


def _text(value: Any) -> str:
    return display_value(value) if not isinstance(value, str) else value


# ---------------------------------------------------------------------------
# State-bound components
# ---------------------------------------------------------------------------


def render_state_value(props: dict[str, Any], children: Any, ctx: RenderContext) -> Element:
    bind = props.get("bind")
    value = format_value(ctx.get(bind), props.get("format"))
    return Element(
        tag="span",
        props={"className": _cls("state-value", props), "data-bind": bind},
        children=[display_value(value)] if value is not None else [],
    )


def render_state_computed(props: dict[str, Any], children: Any, ctx: RenderContext) -> Element:
    expression = props.get("compute")
    result = ctx.evaluate(expression)
    if is_error(result):
        logger.warning("StateComputed: %r failed: %s", expression, result.message)
        ctx.diagnose(
            EVALUATION_ERROR,
            result.message,
            expression=expression,
            kind=result.kind,
        )
        return error_marker(result.message)
    value = format_value(result, props.get("format"))
    return Element(
        tag="span",
        props={"className": _cls("state-computed", props)},
        children=[display_value(value)] if value is not None else [],
    )


def render_slider(props: dict[str, Any], children: Any, ctx: RenderContext) -> Element:
    bind = props.get("bind")
    low = _number(props.get("min"), 0)
    high = _number(props.get("max"), 100)
    step = _number(props.get("step"), 1)
    value = ctx.get(bind, low)
    shown = format_value(value, ".2f" if step < 1 else ".0f")

    label_children: list[Any] = []
    if props.get("label") is not None:
        label_children.append(Element("span", {"className": "tutorial-slider-label"}, [_text(props["label"])]))
    label_children.append(Element("span", {"className": "tutorial-slider-value"}, [display_value(shown)]))

    control = Element(
        tag="input",
        props={
            "type": "range",
            "min": low,
            "max": high,
            "step": step,
            "value": value,
            "data-bind": bind,
        },
        handlers={"change": _numeric_writer(ctx, bind, low, high, "Slider")},
    )
    return Element(
        tag="div",
        props={"className": _cls("tutorial-slider", props)},
        children=[Element("label", {}, label_children), control],
    )


def render_number_input(props: dict[str, Any], children: Any, ctx: RenderContext) -> Element:
    bind = props.get("bind")
    low = _number(props.get("min"), None)
    high = _number(props.get("max"), None)
    value = ctx.get(bind, low if low is not None else 0)

    input_props: dict[str, Any] = {"type": "number", "value": value, "data-bind": bind}
    if low is not None:
        input_props["min"] = low
    if high is not None:
        input_props["max"] = high
    if props.get("step") is not None:
        input_props["step"] = props["step"]

    control = Element(
        tag="input",
        props=input_props,
        handlers={"change": _numeric_writer(ctx, bind, low, high, "NumberInput")},
    )
    parts: list[Any] = []
    if props.get("label") is not None:
        parts.append(Element("span", {"className": "tutorial-number-label"}, [_text(props["label"])]))
    parts.append(control)
    return Element(tag="label", props={"className": _cls("tutorial-number-input", props)}, children=parts)


def render_toggle(props: dict[str, Any], children: Any, ctx: RenderContext) -> Element:
    bind = props.get("bind")
    on = bool(ctx.get(bind, False))

    def on_toggle() -> None:
        # Live read: a handler from an older render must not write a stale negation
        ctx.write(bind, not bool(ctx.current(bind, False)))

    label = props.get("label")
    return Element(
        tag="button",
        props={
            "type": "button",
            "role": "switch",
            "aria-checked": "true" if on else "false",
            "className": _cls("tutorial-toggle" + (" is-on" if on else ""), props),
            "data-bind": bind,
        },
        children=[_text(label)] if label is not None else [],
        handlers={"toggle": on_toggle},
    )


def render_state_conditional(props: dict[str, Any], children: Any, ctx: RenderContext) -> Any:
    expression = props.get("when")
    result = ctx.evaluate(expression)
    if is_error(result):
        # An error is not "false": the otherwise branch is not taken either
        logger.warning("StateConditional: %r failed: %s", expression, result.message)
        ctx.diagnose(CONDITION_ERROR, result.message, expression=expression, kind=result.kind)
        return None
    if truthy(result):
        return ctx.render(children)
    return ctx.render(props.get("otherwise"))


# ---------------------------------------------------------------------------
# Structural components
# ---------------------------------------------------------------------------


def render_fragment(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> list[Any]:
    return children


def render_box(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    return Element("div", _attrs("box", props), children)


def render_card(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    parts: list[Any] = []
    if props.get("title") is not None:
        parts.append(Element("h3", {"className": "card-title"}, [_text(props["title"])]))
    parts.extend(children)
    return Element("div", _attrs("card", props, "title"), parts)


def render_callout(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    kind = props.get("type") if props.get("type") in CALLOUT_ICONS else "info"
    return Element(
        tag="div",
        props={**_attrs(f"callout callout-{kind}", props), "role": "note"},
        children=[
            Element("span", {"className": "callout-icon", "aria-hidden": "true"}, [CALLOUT_ICONS[kind]]),
            Element("div", {"className": "callout-content"}, children),
        ],
    )


def render_code(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    language = props.get("language")
    code_props: dict[str, Any] = {}
    if isinstance(language, str) and language:
        code_props = {"className": f"language-{language}", "data-language": language}
    return Element("pre", _attrs("code-block", props), [Element("code", code_props, children)])


def render_math(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    if props.get("block"):
        return Element("div", _attrs("math math-block", props), children)
    return Element("span", _attrs("math math-inline", props), children)


def render_section(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    parts: list[Any] = []
    if props.get("title") is not None:
        parts.append(Element("h2", {}, [_text(props["title"])]))
    parts.extend(children)
    return Element("section", _attrs("tutorial-section", props, "title"), parts)


def render_deep_dive(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    title = _text(props.get("title", "Deep Dive"))
    return Element(
        tag="details",
        props={**_attrs("deep-dive", props, "title"), "open": bool(props.get("defaultOpen"))},
        children=[
            Element("summary", {}, [f"🌿 {title}"]),
            Element("div", {"className": "deep-dive-content"}, children),
        ],
    )


def render_blockquote(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    parts: list[Any] = list(children)
    if props.get("cite") is not None:
        parts.append(Element("footer", {}, [Element("cite", {}, [_text(props["cite"])])]))
    return Element("blockquote", _attrs("tutorial-blockquote", props), parts)


def render_analogy(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    return Element(
        tag="div",
        props=_attrs("analogy", props),
        children=[Element("span", {"className": "analogy-icon", "aria-hidden": "true"}, ["🔗"]), *children],
    )


def render_formula(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    parts: list[Any] = []
    if props.get("label") is not None:
        parts.append(Element("div", {"className": "formula-label"}, [_text(props["label"])]))
    parts.append(Element("code", {"className": "formula-body"}, children))
    return Element("div", _attrs("formula", props), parts)


def render_example(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    parts: list[Any] = []
    if props.get("title") is not None:
        parts.append(Element("h4", {"className": "example-title"}, [_text(props["title"])]))
    parts.extend(children)
    return Element("div", _attrs("example", props, "title"), parts)


def render_steps(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    items: list[Any] = []
    for step in props.get("steps") or []:
        if isinstance(step, dict):
            body: list[Any] = []
            if step.get("title") is not None:
                body.append(Element("strong", {}, [_text(step["title"])]))
            if step.get("description") is not None:
                if body:
                    body.append(" ")
                body.append(_text(step["description"]))
            items.append(Element("li", {}, body))
        elif step is not None:
            items.append(Element("li", {}, [_text(step)]))
    return Element("ol", _attrs("steps", props), items + list(children))


def render_definition_list(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    parts: list[Any] = []
    for item in props.get("items") or []:
        if not isinstance(item, dict):
            continue
        parts.append(Element("dt", {}, [_text(item.get("term", ""))]))
        parts.append(Element("dd", {}, [_text(item.get("definition", ""))]))
    return Element("dl", _attrs("definition-list", props), parts + list(children))


def render_comparison_table(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    headers = props.get("headers") or []
    rows = props.get("rows") or []
    table: list[Any] = []
    if headers:
        table.append(
            Element("thead", {}, [Element("tr", {}, [Element("th", {}, [_text(h)]) for h in headers])])
        )
    body_rows = [
        Element("tr", {}, [Element("td", {}, [_text(cell)]) for cell in row])
        for row in rows
        if isinstance(row, (list, tuple))
    ]
    table.append(Element("tbody", {}, body_rows))
    return Element("table", _attrs("comparison-table", props), table)


def render_key_value(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    base = "key-value is-highlighted" if props.get("highlight") else "key-value"
    value = as_children(props.get("value")) if props.get("value") is not None else children
    return Element(
        tag="div",
        props=_attrs(base, props),
        children=[
            Element("span", {"className": "key-value-label"}, [_text(props.get("label", ""))]),
            Element("span", {"className": "key-value-value"}, [_text(v) for v in value]),
        ],
    )


# ---------------------------------------------------------------------------
# Annotation affordances
# ---------------------------------------------------------------------------


def render_annotation(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    kind = props.get("type") if props.get("type") in ANNOTATION_ICONS else "explain"
    trigger = _text(props.get("trigger", ""))
    element_props: dict[str, Any] = {
        "className": _cls(f"annotation annotation-{kind}", props),
        "data-annotation-type": kind,
        "open": bool(props.get("defaultOpen")),
    }
    if props.get("id") is not None:
        element_props["id"] = props["id"]
    return Element(
        tag="details",
        props=element_props,
        children=[
            Element("summary", {}, [f"{ANNOTATION_ICONS[kind]} {trigger}".rstrip()]),
            Element("div", {"className": "annotation-content"}, children),
        ],
        handlers={"action": _action_handler(ctx, trigger)},
    )


def render_footnote_annotation(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> list[Any]:
    note_id = _text(props.get("id", ""))
    ref = Element(
        tag="sup",
        props={"className": "footnote-ref"},
        children=[Element("a", {"href": f"#fn-{note_id}"}, [f"[{note_id}]"])],
        handlers={"action": _action_handler(ctx)},
    )
    note = Element(
        tag="aside",
        props={"className": _cls("footnote", props), "id": f"fn-{note_id}", "role": "note"},
        children=children,
    )
    return [ref, note]


def render_annotation_marker(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    target = _text(props.get("targetId", ""))
    kind = props.get("type") if props.get("type") in ANNOTATION_ICONS else "explain"
    label = props.get("label")
    if label is None:
        label = ANNOTATION_ICONS[kind]
    return Element(
        tag="a",
        props={
            "className": _cls("annotation-marker", props),
            "href": f"#{target}",
            "data-annotation-type": kind,
        },
        children=[_text(label), *children],
        handlers={"action": _action_handler(ctx)},
    )


def render_annotatable_content(props: dict[str, Any], children: list[Any], ctx: RenderContext) -> Element:
    return Element(
        tag="div",
        props={"className": _cls("tutorial-annotatable", props), "data-document-id": ctx.document_id},
        children=children,
        handlers={"action": _action_handler(ctx)},
    )


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

BUILTIN_RENDERERS: dict[str, Renderer] = {
    "StateValue": Renderer(render_state_value, KIND_DISPLAY),
    "StateComputed": Renderer(render_state_computed, KIND_COMPUTED),
    "Slider": Renderer(render_slider, KIND_NUMERIC),
    "NumberInput": Renderer(render_number_input, KIND_NUMERIC),
    "Toggle": Renderer(render_toggle, KIND_BOOLEAN),
    "StateConditional": Renderer(render_state_conditional, KIND_CONDITIONAL),
    "Fragment": Renderer(render_fragment, KIND_STRUCTURAL),
    "Box": Renderer(render_box, KIND_STRUCTURAL),
    "Card": Renderer(render_card, KIND_STRUCTURAL),
    "Callout": Renderer(render_callout, KIND_STRUCTURAL),
    "Code": Renderer(render_code, KIND_STRUCTURAL),
    "Math": Renderer(render_math, KIND_STRUCTURAL),
    "Section": Renderer(render_section, KIND_STRUCTURAL),
    "DeepDive": Renderer(render_deep_dive, KIND_STRUCTURAL),
    "Blockquote": Renderer(render_blockquote, KIND_STRUCTURAL),
    "Analogy": Renderer(render_analogy, KIND_STRUCTURAL),
    "Formula": Renderer(render_formula, KIND_STRUCTURAL),
    "Example": Renderer(render_example, KIND_STRUCTURAL),
    "Steps": Renderer(render_steps, KIND_STRUCTURAL),
    "DefinitionList": Renderer(render_definition_list, KIND_STRUCTURAL),
    "ComparisonTable": Renderer(render_comparison_table, KIND_STRUCTURAL),
    "KeyValue": Renderer(render_key_value, KIND_STRUCTURAL),
    "Annotation": Renderer(render_annotation, KIND_ANNOTATION),
    "FootnoteAnnotation": Renderer(render_footnote_annotation, KIND_ANNOTATION),
    "AnnotationMarker": Renderer(render_annotation_marker, KIND_ANNOTATION),
    "AnnotatableContent": Renderer(render_annotatable_content, KIND_ANNOTATION),
}

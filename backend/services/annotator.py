"""
Annotator — turns a reader's selection into a new content node and
splices it into the tutorial tree.

Two steps, kept separate so each is testable on its own:

  generate_annotation()  LLM call → one node (Callout or DeepDive)
    explain → Callout (info): short contextual explanation
    branch  → DeepDive: children parsed from the model's JSON array,
              falling back to plain paragraphs
    ask     → DeepDive: answer to the reader's question
    LLM failure → Callout (warning) describing the failure. Never raises.

  insert_annotation()    pure tree edit, input never mutated
    1. find the first string containing the selected text
       (children, props.children, props.steps, props.items, props.rows)
    2. nearest Section ancestor → insert right after the containing element
    3. no Section → new Section after the containing top-level element
    4. text not found → new Section appended at the end
"""

from __future__ import annotations

import copy
import json
import logging
import re
import secrets
import string
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import chevron

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

ACTIONS = ("explain", "branch", "ask")

_TIMESTAMP_CLASS = "text-gray-400 text-xs"

# Cache loaded prompts in memory (they don't change at runtime)
_cache: dict[str, str] = {}


class CompletionClient(Protocol):
    async def complete(self, system: str, prompt: str) -> str: ...


def _load(name: str) -> str:
    """Load and cache a prompt template."""
    if name not in _cache:
        path = PROMPTS_DIR / f"{name}.md"
        _cache[name] = path.read_text()
    return _cache[name]


def build_prompts(
    action: str,
    selected_text: str,
    context: str,
    tutorial_title: str | None,
    question: str | None = None,
) -> tuple[str, str]:
    """Render (system, user) prompts for an action."""
    data = {
        "tutorial_title": tutorial_title or "Tutorial",
        "selected_text": selected_text,
        "context": context,
        "question": question or "",
    }
    system = chevron.render(_load("annotation_system"), data)
    prompt = chevron.render(_load(f"annotation_{action}"), data)
    return system, prompt


# ============================================================================
# Generation
# ============================================================================


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _paragraphs(text: str) -> list[str]:
    return [p.strip() for p in text.strip().split("\n\n") if p.strip()]


def parse_deep_dive(response: str) -> list[Any]:
    """
    Content nodes from a branch response.

    Takes the outermost [...] span as a JSON array. If there is none, or it
    doesn't parse, each blank-line separated paragraph becomes a `p` node.
    """
    match = re.search(r"\[[\s\S]*\]", response)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.info("annotator: branch response is not valid JSON, using paragraphs")
        else:
            if isinstance(parsed, list):
                return parsed
    else:
        logger.info("annotator: no JSON array in branch response, using paragraphs")

    nodes = []
    for p in _paragraphs(response):
        # Drop stray single-line JSON fragments from a half-formed answer
        cleaned = re.sub(r"^[\[{].*[\]}]$", "", p, flags=re.MULTILINE).strip()
        nodes.append({"type": "p", "children": cleaned or p})
    return nodes


def _stamp(timestamp: str, extra_class: str = "") -> dict[str, Any]:
    class_name = f"{_TIMESTAMP_CLASS} {extra_class}".strip()
    return {"type": "em", "props": {"className": class_name}, "children": f"({timestamp})"}


async def generate_annotation(
    llm: CompletionClient,
    action: str,
    selected_text: str,
    context: str = "",
    tutorial_title: str | None = None,
    question: str | None = None,
    timestamp: str | None = None,
) -> dict[str, Any]:
    """Build the annotation node for an action. LLM failures become a warning Callout."""
    if action not in ACTIONS:
        raise ValueError(f"Unknown annotation action: {action!r}")
    if action == "ask" and not question:
        raise ValueError("Question is required for ask action")

    stamp = timestamp or _timestamp()
    system, prompt = build_prompts(action, selected_text, context, tutorial_title, question)

    try:
        logger.info("annotator: calling LLM for %s", action)
        response = await llm.complete(system, prompt)
    except Exception as e:
        logger.exception("annotator: LLM call failed for %s", action)
        return {
            "type": "Callout",
            "props": {"type": "warning"},
            "children": [
                {"type": "strong", "children": f'⚠️ "{selected_text}":'},
                " ",
                f"AI generation failed: {e}. Please try again.",
                " ",
                _stamp(stamp),
            ],
        }

    if action == "explain":
        return {
            "type": "Callout",
            "props": {"type": "info"},
            "children": [
                {"type": "strong", "children": f'💡 "{selected_text}":'},
                " ",
                response.strip(),
                " ",
                _stamp(stamp),
            ],
        }

    if action == "branch":
        return {
            "type": "DeepDive",
            "props": {"title": f"Deep Dive: {selected_text}", "defaultOpen": True},
            "children": parse_deep_dive(response),
        }

    return {
        "type": "DeepDive",
        "props": {"title": f"❓ Q: {question}", "defaultOpen": True},
        "children": [
            {"type": "Callout", "props": {"type": "info"}, "children": [{"type": "em", "children": f'About "{selected_text}"'}]},
            *({"type": "p", "children": p} for p in _paragraphs(response)),
            _stamp(stamp, "block mt-4"),
        ],
    }


# ============================================================================
# Insertion
# ============================================================================

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_annotation_id() -> str:
    """ann-<millis>-<6 random base36 chars>"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"ann-{int(time.time() * 1000)}-{suffix}"


TreePath = list[Any]


def _contains(value: Any, needle: str) -> bool:
    return isinstance(value, str) and needle in value


def find_text(node: Any, needle: str, path: TreePath | None = None) -> TreePath | None:
    """Path (list of keys / indexes) to the first string containing needle, depth first."""
    path = path or []
    if isinstance(node, str):
        return path if needle in node else None

    if isinstance(node, list):
        for i, child in enumerate(node):
            found = find_text(child, needle, [*path, i])
            if found is not None:
                return found
        return None

    if not isinstance(node, dict):
        return None

    if node.get("children") is not None:
        found = find_text(node["children"], needle, [*path, "children"])
        if found is not None:
            return found

    props = node.get("props")
    if not isinstance(props, dict):
        return None

    if props.get("children") is not None:
        found = find_text(props["children"], needle, [*path, "props", "children"])
        if found is not None:
            return found

    for i, step in enumerate(props.get("steps") or []):
        if _contains(step, needle):
            return [*path, "props", "steps", i]
        if isinstance(step, dict):
            for key in ("title", "description"):
                if _contains(step.get(key), needle):
                    return [*path, "props", "steps", i, key]

    for i, item in enumerate(props.get("items") or []):
        if isinstance(item, dict):
            for key in ("term", "definition"):
                if _contains(item.get(key), needle):
                    return [*path, "props", "items", i, key]

    for i, row in enumerate(props.get("rows") or []):
        if isinstance(row, list):
            for j, cell in enumerate(row):
                if _contains(cell, needle):
                    return [*path, "props", "rows", i, j]

    return None


def _get(root: Any, path: TreePath) -> Any:
    current = root
    for key in path:
        current = current[key]
    return current


def _children_list(node: dict[str, Any]) -> list[Any]:
    """Make node["children"] a list (pulling from props.children if needed) and return it."""
    children = node.get("children")
    if children is None and isinstance(node.get("props"), dict):
        children = node["props"].pop("children", None)
    if children is None:
        children = []
    elif not isinstance(children, list):
        children = [children]
    node["children"] = children
    return children


def insert_annotation(document: dict[str, Any], selected_text: str, annotation: dict[str, Any]) -> tuple[dict[str, Any], str]:
    """
    Insert an annotation node into a copy of a tutorial document.

    Returns (updated document, annotation id). Neither input is mutated.
    """
    updated = copy.deepcopy(document)
    annotation = copy.deepcopy(annotation)
    annotation_id = new_annotation_id()
    annotation.setdefault("props", {})["id"] = annotation_id

    content = updated.get("content")
    path = find_text(content, selected_text) if selected_text else None

    if path is None:
        logger.info("annotator: %r not found, appending new section", selected_text[:30])
        updated["content"] = _append_section(content, annotation)
        return updated, annotation_id

    # Nearest Section ancestor of the matched string
    for depth in range(len(path) - 1, -1, -1):
        section_path = path[:depth]
        node = _get(content, section_path)
        if isinstance(node, dict) and node.get("type") == "Section":
            rest = path[depth:]
            children = _children_list(node)
            index = rest[1] if len(rest) > 1 and rest[0] == "children" and isinstance(rest[1], int) else None
            if index is None and len(rest) > 2 and rest[:2] == ["props", "children"] and isinstance(rest[2], int):
                # children were moved from props.children; same indexes
                index = rest[2]
            if index is not None:
                children.insert(index + 1, annotation)
                logger.info("annotator: inserted after element %d of section", index)
            else:
                children.append(annotation)
                logger.info("annotator: appended to section")
            return updated, annotation_id

    if isinstance(content, dict) and len(path) > 1 and path[0] == "children" and isinstance(path[1], int):
        _children_list(content).insert(path[1] + 1, {"type": "Section", "children": [annotation]})
        logger.info("annotator: inserted new section after top-level element %d", path[1])
        return updated, annotation_id

    updated["content"] = _append_section(content, annotation)
    return updated, annotation_id


def _append_section(content: Any, annotation: dict[str, Any]) -> Any:
    section = {"type": "Section", "children": [annotation]}
    if isinstance(content, dict) and content.get("type"):
        _children_list(content).append(section)
        return content
    if isinstance(content, list):
        return [*content, section]
    if content is None:
        return section
    return [content, section]

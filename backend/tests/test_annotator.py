"""Tests for annotation generation, deep-dive parsing, and tree insertion."""

from __future__ import annotations

import copy
import re

import pytest

from backend.services.annotator import (
    build_prompts,
    find_text,
    generate_annotation,
    insert_annotation,
    new_annotation_id,
    parse_deep_dive,
)
from backend.services.content_store import ContentStore, TutorialNotFoundError

NOTE = {"type": "Callout", "props": {"type": "info"}, "children": "note"}

SAMPLE_TUTORIAL = {
    "id": "vectors",
    "title": "Vector Projection",
    "state": {},
    "content": {
        "type": "div",
        "children": [
            {
                "type": "Section",
                "children": [
                    {"type": "p", "children": "A projection drops one vector onto another."},
                    {"type": "p", "children": "The dot product measures alignment."},
                ],
            },
            {"type": "p", "children": "Closing thoughts on orthogonality."},
        ],
    },
}


class FakeLLM:
    def __init__(self, reply: str = "", error: Exception | None = None):
        self.reply = reply
        self.error = error

    async def complete(self, system: str, prompt: str) -> str:
        if self.error is not None:
            raise self.error
        return self.reply


# ── prompts ─────────────────────────────────────────────────────────────────


class TestPrompts:
    def test_values_are_not_html_escaped(self):
        system, prompt = build_prompts("explain", 'a < b & "c"', "ctx", "Title")
        assert 'a < b & "c"' in prompt
        assert '"Title"' in system

    def test_default_title(self):
        system, _ = build_prompts("branch", "x", "", None)
        assert '"Tutorial"' in system

    def test_branch_prompt_lists_content_types(self):
        _, prompt = build_prompts("branch", "x", "", None)
        for name in ("Analogy", "Formula", "Steps", "DefinitionList", "ComparisonTable", "KeyValue"):
            assert name in prompt


# ── generation ──────────────────────────────────────────────────────────────


class TestGenerate:
    async def test_explain(self):
        node = await generate_annotation(FakeLLM("  It scales.  "), "explain", "scalar", timestamp="T")
        assert node == {
            "type": "Callout",
            "props": {"type": "info"},
            "children": [
                {"type": "strong", "children": '💡 "scalar":'},
                " ",
                "It scales.",
                " ",
                {"type": "em", "props": {"className": "text-gray-400 text-xs"}, "children": "(T)"},
            ],
        }

    async def test_ask_structure(self):
        node = await generate_annotation(FakeLLM("One.\n\nTwo."), "ask", "scalar", question="Why?", timestamp="T")
        assert node["type"] == "DeepDive"
        assert node["props"] == {"title": "❓ Q: Why?", "defaultOpen": True}
        assert node["children"][0]["children"] == [{"type": "em", "children": 'About "scalar"'}]
        assert node["children"][1:3] == [{"type": "p", "children": "One."}, {"type": "p", "children": "Two."}]
        assert node["children"][-1]["props"]["className"] == "text-gray-400 text-xs block mt-4"

    async def test_failure_is_warning(self):
        node = await generate_annotation(FakeLLM(error=TimeoutError("slow")), "branch", "scalar", timestamp="T")
        assert node["type"] == "Callout"
        assert node["props"]["type"] == "warning"
        assert node["children"][0]["children"] == '⚠️ "scalar":'

    async def test_bad_action_raises(self):
        with pytest.raises(ValueError):
            await generate_annotation(FakeLLM(), "summarize", "x")

    async def test_ask_without_question_raises(self):
        with pytest.raises(ValueError):
            await generate_annotation(FakeLLM(), "ask", "x")


class TestParseDeepDive:
    def test_json_array_inside_prose(self):
        reply = 'Sure!\n[{"type": "Analogy", "children": "Like a shadow."}]\nHope that helps.'
        assert parse_deep_dive(reply) == [{"type": "Analogy", "children": "Like a shadow."}]

    def test_fallback_to_paragraphs(self):
        assert parse_deep_dive("First idea.\n\nSecond idea.") == [
            {"type": "p", "children": "First idea."},
            {"type": "p", "children": "Second idea."},
        ]

    def test_broken_json_falls_back(self):
        nodes = parse_deep_dive('Intro text.\n\n[{"type": "p", "children": ]')
        assert nodes[0] == {"type": "p", "children": "Intro text."}
        assert len(nodes) == 2


# ── insertion ───────────────────────────────────────────────────────────────


class TestFindText:
    def test_steps_items_rows(self):
        tree = {
            "type": "div",
            "children": [
                {"type": "Steps", "props": {"steps": ["plain", {"title": "T", "description": "find me"}]}},
                {"type": "DefinitionList", "props": {"items": [{"term": "APR", "definition": "rate"}]}},
                {"type": "ComparisonTable", "props": {"headers": ["a"], "rows": [["x", "cell hit"]]}},
            ],
        }
        assert find_text(tree, "find me") == ["children", 0, "props", "steps", 1, "description"]
        assert find_text(tree, "APR") == ["children", 1, "props", "items", 0, "term"]
        assert find_text(tree, "cell hit") == ["children", 2, "props", "rows", 0, 1]

    def test_props_children(self):
        tree = {"type": "p", "props": {"children": "inside props"}}
        assert find_text(tree, "inside") == ["props", "children"]

    def test_not_found(self):
        assert find_text(SAMPLE_TUTORIAL["content"], "nowhere") is None


class TestInsert:
    def test_after_containing_element_in_section(self):
        updated, ann_id = insert_annotation(SAMPLE_TUTORIAL, "projection", NOTE)
        section = updated["content"]["children"][0]
        assert section["children"][1]["props"]["id"] == ann_id
        assert len(section["children"]) == 3

    def test_new_section_after_top_level_element(self):
        updated, _ = insert_annotation(SAMPLE_TUTORIAL, "orthogonality", NOTE)
        children = updated["content"]["children"]
        assert [c["type"] for c in children] == ["Section", "p", "Section"]
        assert children[2]["children"][0]["type"] == "Callout"

    def test_not_found_appends_section(self):
        updated, _ = insert_annotation(SAMPLE_TUTORIAL, "nowhere", NOTE)
        assert updated["content"]["children"][-1] == {
            "type": "Section",
            "children": [updated["content"]["children"][-1]["children"][0]],
        }
        assert len(updated["content"]["children"]) == 3

    def test_section_with_string_children(self):
        doc = {"id": "s", "title": "S", "state": {}, "content": {"type": "Section", "children": "only text"}}
        updated, _ = insert_annotation(doc, "only", NOTE)
        assert updated["content"]["children"][0] == "only text"
        assert updated["content"]["children"][1]["type"] == "Callout"

    def test_section_with_props_children(self):
        doc = {
            "id": "s",
            "title": "S",
            "state": {},
            "content": {"type": "Section", "props": {"children": ["a", "target", "c"]}},
        }
        updated, _ = insert_annotation(doc, "target", NOTE)
        assert [c if isinstance(c, str) else c["type"] for c in updated["content"]["children"]] == [
            "a",
            "target",
            "Callout",
            "c",
        ]
        assert "children" not in updated["content"]["props"]

    def test_inputs_not_mutated(self):
        before = copy.deepcopy(SAMPLE_TUTORIAL)
        note = copy.deepcopy(NOTE)
        insert_annotation(SAMPLE_TUTORIAL, "projection", note)
        assert SAMPLE_TUTORIAL == before
        assert note == NOTE

    def test_annotation_id_format(self):
        assert re.fullmatch(r"ann-\d+-[a-z0-9]{6}", new_annotation_id())


# ── content store ───────────────────────────────────────────────────────────


class TestContentStore:
    def test_save_then_load(self, tmp_path):
        store = ContentStore(tmp_path)
        store.save("intro", {"id": "intro", "title": "Über"})
        assert "Über" in (tmp_path / "intro.json").read_text(encoding="utf-8")
        assert store.load("intro") == {"id": "intro", "title": "Über"}
        assert store.list_ids() == ["intro"]

    @pytest.mark.parametrize("tutorial_id", ["../etc/passwd", "a/b", "", ".hidden"])
    def test_rejects_path_like_ids(self, tmp_path, tutorial_id):
        with pytest.raises(TutorialNotFoundError):
            ContentStore(tmp_path).load(tutorial_id)

    def test_unreadable_documents(self, tmp_path):
        (tmp_path / "broken.json").write_text("{not json")
        (tmp_path / "listy.json").write_text("[1, 2]")
        store = ContentStore(tmp_path)
        with pytest.raises(TutorialNotFoundError):
            store.load("broken")
        with pytest.raises(TutorialNotFoundError):
            store.load("listy")
        with pytest.raises(TutorialNotFoundError):
            store.load("absent")

"""
Tutorial Engine -- Component Registry Tests

Covers:
  - Built-in vocabulary is present
  - Unregistered types resolve to a passthrough marker
  - Registration: overwrite, plain callables wrapped as widgets, bad input rejected
  - Registries are independent objects (no shared module state)
"""

import pytest

from engine.tutorial.registry import ComponentRegistry
from engine.tutorial.types import KIND_DISPLAY, KIND_STRUCTURAL, KIND_WIDGET, Renderer

BUILTINS = [
    "StateValue",
    "StateComputed",
    "Slider",
    "NumberInput",
    "Toggle",
    "StateConditional",
    "Fragment",
    "Box",
    "Card",
    "Callout",
    "Code",
    "Math",
    "Section",
    "DeepDive",
    "Blockquote",
    "Analogy",
    "Formula",
    "Example",
    "Steps",
    "DefinitionList",
    "ComparisonTable",
    "KeyValue",
    "Annotation",
    "FootnoteAnnotation",
    "AnnotationMarker",
    "AnnotatableContent",
]


class TestBuiltins:
    def test_all_builtins_registered(self):
        registry = ComponentRegistry.with_builtins()
        for name in BUILTINS:
            assert name in registry, name
        assert len(registry) == len(BUILTINS)

    def test_list_types_sorted(self):
        registry = ComponentRegistry.with_builtins()
        assert registry.list_types() == sorted(BUILTINS)

    def test_builtin_kinds(self):
        registry = ComponentRegistry.with_builtins()
        assert registry.resolve("StateValue").kind == KIND_DISPLAY
        assert registry.resolve("Section").kind == KIND_STRUCTURAL

    def test_empty_registry(self):
        assert ComponentRegistry().list_types() == []


class TestResolve:
    def test_unregistered_is_passthrough(self):
        registry = ComponentRegistry.with_builtins()
        assert registry.resolve("section") == "section"
        assert registry.resolve("MadeUp") == "MadeUp"

    def test_registered_returns_renderer(self):
        registry = ComponentRegistry.with_builtins()
        assert isinstance(registry.resolve("Slider"), Renderer)


class TestRegister:
    def test_plain_callable_becomes_widget(self):
        registry = ComponentRegistry()
        registry.register("Badge", lambda props, children, ctx: "badge")
        renderer = registry.resolve("Badge")
        assert isinstance(renderer, Renderer)
        assert renderer.kind == KIND_WIDGET
        assert renderer.prerenders_children

    def test_last_registration_wins(self):
        registry = ComponentRegistry()
        registry.register("X", lambda p, c, ctx: "first")
        registry.register("X", lambda p, c, ctx: "second")
        assert registry.resolve("X").render({}, [], None) == "second"
        assert registry.list_types() == ["X"]

    def test_override_builtin(self):
        registry = ComponentRegistry.with_builtins()
        registry.register("Callout", lambda p, c, ctx: "custom")
        assert registry.resolve("Callout").kind == KIND_WIDGET

    def test_explicit_kind(self):
        registry = ComponentRegistry()
        registry.register("Wrap", lambda p, c, ctx: c, kind=KIND_STRUCTURAL)
        assert registry.resolve("Wrap").kind == KIND_STRUCTURAL

    @pytest.mark.parametrize("bad", ["", None, 3])
    def test_bad_type_name(self, bad):
        with pytest.raises(ValueError):
            ComponentRegistry().register(bad, lambda p, c, ctx: None)

    def test_non_callable_renderer(self):
        with pytest.raises(TypeError):
            ComponentRegistry().register("X", "not callable")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            Renderer(lambda p, c, ctx: None, kind="mystery")

    def test_unregister(self):
        registry = ComponentRegistry.with_builtins()
        assert registry.unregister("Toggle") is True
        assert registry.resolve("Toggle") == "Toggle"
        assert registry.unregister("Toggle") is False


class TestIsolation:
    def test_with_builtins_returns_fresh_registries(self):
        a = ComponentRegistry.with_builtins()
        b = ComponentRegistry.with_builtins()
        a.register("OnlyInA", lambda p, c, ctx: None)
        assert "OnlyInA" not in b

    def test_copy_is_independent(self):
        original = ComponentRegistry.with_builtins()
        clone = original.copy()
        clone.register("Extra", lambda p, c, ctx: None)
        clone.unregister("Box")
        assert "Extra" not in original
        assert "Box" in original

"""
Tutorial Engine — Component Registry

Maps a node's `type` string to the renderer that draws it.

- resolve(type)   → Renderer, or the type string itself as a passthrough marker
                    (render it as a bare intrinsic tag, props and children untouched)
- register(...)   → add or overwrite a type at runtime; last registration wins
- list_types()    → introspection only; never used to drive rendering

Each session owns (or is handed) its own registry. There is no module-level
mutable registry, so sessions and tests never share registrations.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable

from engine.tutorial.components import BUILTIN_RENDERERS
from engine.tutorial.types import KIND_WIDGET, Renderer

logger = logging.getLogger(__name__)

RendererLike = Renderer | Callable[[dict[str, Any], Any, Any], Any]


def _as_renderer(renderer: RendererLike, kind: str | None) -> Renderer:
    if isinstance(renderer, Renderer):
        if kind is not None and kind != renderer.kind:
            return Renderer(render=renderer.render, kind=kind)
        return renderer
    if callable(renderer):
        return Renderer(render=renderer, kind=kind or KIND_WIDGET)
    raise TypeError(f"Renderer must be a Renderer or a callable, got {type(renderer).__name__}")


class ComponentRegistry:
    """Mutable mapping from node type to renderer."""

    def __init__(self, renderers: Mapping[str, RendererLike] | None = None) -> None:
        self._renderers: dict[str, Renderer] = {}
        for type_name, renderer in (renderers or {}).items():
            self.register(type_name, renderer)

    @classmethod
    def with_builtins(cls) -> ComponentRegistry:
        """A fresh registry pre-populated with the built-in component vocabulary."""
        return cls(BUILTIN_RENDERERS)

    def resolve(self, type_name: str) -> Renderer | str:
        renderer = self._renderers.get(type_name)
        if renderer is None:
            return type_name
        return renderer

    def register(self, type_name: str, renderer: RendererLike, *, kind: str | None = None) -> None:
        """
        Bind `type_name` to a renderer. Overwrites any earlier binding.

        A plain callable `(props, children, ctx)` is wrapped as a widget:
        its children arrive already rendered. Registration never triggers a render.
        """
        if not isinstance(type_name, str) or not type_name:
            raise ValueError(f"Component type must be a non-empty string, got {type_name!r}")
        resolved = _as_renderer(renderer, kind)
        if type_name in self._renderers:
            logger.debug("registry: overriding component %r", type_name)
        self._renderers[type_name] = resolved

    def unregister(self, type_name: str) -> bool:
        """Remove a binding. Returns False if the type was not registered."""
        return self._renderers.pop(type_name, None) is not None

    def list_types(self) -> list[str]:
        return sorted(self._renderers)

    def copy(self) -> ComponentRegistry:
        clone = ComponentRegistry()
        clone._renderers = dict(self._renderers)
        return clone

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._renderers

    def __len__(self) -> int:
        return len(self._renderers)

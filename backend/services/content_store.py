"""
Content store — tutorial documents on disk, one <tutorial_id>.json each.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


class TutorialNotFoundError(LookupError):
    """No readable document for the requested tutorial id."""


class ContentStore:
    """Reads and writes tutorial JSON documents in one directory."""

    def __init__(self, content_dir: Path | str):
        self.content_dir = Path(content_dir)
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, tutorial_id: str) -> asyncio.Lock:
        """Per-tutorial lock serializing read-modify-write cycles on one file."""
        if tutorial_id not in self._locks:
            self._locks[tutorial_id] = asyncio.Lock()
        return self._locks[tutorial_id]

    def path_for(self, tutorial_id: str) -> Path:
        # Ids are bare file stems; anything else could escape the directory
        if not _ID_RE.match(tutorial_id):
            raise TutorialNotFoundError(tutorial_id)
        return self.content_dir / f"{tutorial_id}.json"

    def list_ids(self) -> list[str]:
        """Ids of every tutorial in the directory, sorted. Raises OSError if unreadable."""
        return sorted(p.stem for p in self.content_dir.iterdir() if p.is_file() and p.suffix == ".json")

    def load(self, tutorial_id: str) -> dict[str, Any]:
        path = self.path_for(tutorial_id)
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, RecursionError) as e:
            logger.info("content_store: cannot load %s: %s", tutorial_id, e)
            raise TutorialNotFoundError(tutorial_id) from e
        if not isinstance(doc, dict):
            raise TutorialNotFoundError(tutorial_id)
        return doc

    def save(self, tutorial_id: str, document: dict[str, Any]) -> Path:
        path = self.path_for(tutorial_id)
        path.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info("content_store: saved %s", path)
        return path

    # -- async wrappers: file IO runs in the default executor --

    async def aload(self, tutorial_id: str) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.load, tutorial_id)

    async def asave(self, tutorial_id: str, document: dict[str, Any]) -> Path:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.save, tutorial_id, document)

    async def alist_ids(self) -> list[str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.list_ids)

"""SourceRegistry: the persisted list of log files being watched.

Sources live in CONFIG_DIR/config.json:

{
  "sources": [
    {"path": "/var/log/app.log", "tagName": "app", "color": "#a371f7"}
  ]
}

Older installs stored a bare ``{"file_paths": [...]}`` list; those files are
migrated on load (tags derived from file names, colours assigned in order).
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PALETTE = (
    "#a371f7",
    "#58a6ff",
    "#3fb950",
    "#d29922",
    "#f85149",
    "#79c0ff",
    "#ff7b72",
    "#a5d6ff",
)


class RegistryError(Exception):
    """The registry file could not be read or written."""


class SourceNotFound(RegistryError):
    pass


@dataclass(frozen=True)
class Source:
    path: str
    tag_name: str
    color: str

    @classmethod
    def from_dict(cls, data: dict) -> Source:
        path = normalize_path(str(data["path"]))
        return cls(
            path=path,
            tag_name=str(data.get("tagName") or tag_from_path(path)),
            color=str(data.get("color") or PALETTE[0]),
        )

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "tagName": self.tag_name, "color": self.color}


def normalize_path(path: str) -> str:
    """Canonical identity of a source path."""
    return os.path.normcase(os.path.normpath(path.strip()))


def is_readable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.R_OK)


def tag_from_path(path: str) -> str:
    base = os.path.basename(path)
    name = re.sub(r"[-_]", " ", re.sub(r"\.[^.]+$", "", base))
    return name or base or "log"


def pick_color(existing_colors: list[str]) -> str:
    """First palette colour not already in use, else cycle by count."""
    used = {c.lower() for c in existing_colors}
    for color in PALETTE:
        if color.lower() not in used:
            return color
    return PALETTE[len(existing_colors) % len(PALETTE)]


class SourceRegistry:
    """JSON-file backed store of sources, keyed by normalized path."""

    def __init__(self, config_file: str | Path) -> None:
        self._path = Path(config_file)
        self._sources: list[Source] | None = None

    @property
    def config_file(self) -> Path:
        return self._path

    def _load(self) -> list[Source]:
        if self._sources is not None:
            return self._sources
        if not self._path.exists():
            logger.info("No registry at %s, starting empty", self._path)
            self._sources = []
            return self._sources
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise RegistryError(f"Failed to read config: {e}") from e
        self._sources = _migrate(data)
        logger.info("Loaded %d source(s) from %s", len(self._sources), self._path)
        return self._sources

    def _save(self, sources: list[Source]) -> None:
        """Write *sources* to disk, then make them the in-memory state."""
        data = {"sources": [s.to_dict() for s in sources]}
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            raise RegistryError(f"Failed to write config: {e}") from e
        self._sources = sources
        logger.debug("Saved %d source(s) to %s", len(sources), self._path)

    def list(self) -> list[Source]:
        return list(self._load())

    def get(self, path: str) -> Source | None:
        normalized = normalize_path(path)
        for source in self._load():
            if source.path == normalized:
                return source
        return None

    def add(self, path: str, tag_name: str | None = None, color: str | None = None) -> Source:
        """Register *path*; an already-registered path is returned unchanged."""
        normalized = normalize_path(path)
        existing = self.get(normalized)
        if existing is not None:
            return existing

        sources = self._load()
        tag = (tag_name or "").strip() or tag_from_path(normalized)
        source = Source(
            path=normalized,
            tag_name=tag,
            color=color or pick_color([s.color for s in sources]),
        )
        self._save([*sources, source])
        logger.info("Added source %s (%s)", source.path, source.tag_name)
        return source

    def update(self, path: str, tag_name: str | None = None, color: str | None = None) -> Source:
        normalized = normalize_path(path)
        sources = self._load()
        for idx, source in enumerate(sources):
            if source.path == normalized:
                break
        else:
            raise SourceNotFound(f"No source registered for {normalized}")

        tag = source.tag_name
        if tag_name is not None:
            tag = tag_name.strip() or tag
        updated = Source(path=normalized, tag_name=tag, color=color if color is not None else source.color)
        self._save([*sources[:idx], updated, *sources[idx + 1 :]])
        logger.info("Updated source %s (%s, %s)", updated.path, updated.tag_name, updated.color)
        return updated

    def remove(self, path: str) -> None:
        normalized = normalize_path(path)
        sources = self._load()
        remaining = [s for s in sources if s.path != normalized]
        if len(remaining) == len(sources):
            return
        self._save(remaining)
        logger.info("Removed source %s", normalized)


def _migrate(data: dict) -> list[Source]:
    """Build the source list from a current or legacy config document."""
    if not isinstance(data, dict):
        raise RegistryError("Failed to read config: top-level value is not an object")
    sources = data.get("sources")
    if isinstance(sources, list) and sources:
        return [Source.from_dict(s) for s in sources if isinstance(s, dict) and s.get("path")]

    migrated: list[Source] = []
    for i, fp in enumerate(data.get("file_paths") or []):
        normalized = normalize_path(str(fp))
        migrated.append(Source(normalized, tag_from_path(normalized), PALETTE[i % len(PALETTE)]))
    if migrated:
        logger.info("Migrated %d legacy file path(s)", len(migrated))
    return migrated

"""Output persistence: pretty JSON files and the per-theme manifest.

The manifest is an explicit value: loaded once at the start of a run, merged
with the themes that were actually written, and persisted once at the end.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from src.core.logger import logger
from src.models.datatypes import Manifest

MANIFEST_FILENAME = "manifest.json"


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return current.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_date(now: datetime | None = None) -> str:
    """Current UTC calendar date as ``YYYY-MM-DD``."""
    return (now or datetime.now(timezone.utc)).astimezone(timezone.utc).strftime("%Y-%m-%d")


def write_json(path: str | Path, value: Any) -> None:
    """Write ``value`` as 2-space indented JSON with a trailing newline, creating parents."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        f.write(json.dumps(value, indent=2, ensure_ascii=False) + "\n")


def theme_document_path(data_dir: str | Path, date: str, theme: str) -> Path:
    return Path(data_dir) / date / f"{theme}.json"


def load_manifest(path: str | Path) -> Manifest:
    """Read the manifest, or return an empty one if it is missing or unreadable."""
    manifest_path = Path(path)
    if not manifest_path.exists():
        logger.info(f"No manifest at {manifest_path}; starting fresh")
        return Manifest()

    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(f"Could not read manifest {manifest_path}: {exc}; starting fresh")
        return Manifest()

    if not isinstance(data, dict):
        logger.warning(f"Manifest {manifest_path} is not an object; starting fresh")
        return Manifest()

    themes = data.get("themes")
    return Manifest(
        generated_at_utc=str(data.get("generated_at_utc") or ""),
        themes={
            str(theme): dict(entry)
            for theme, entry in (themes.items() if isinstance(themes, dict) else [])
            if isinstance(entry, dict)
        },
    )


def merge_manifest(
    previous: Manifest,
    successful_themes: Iterable[str],
    date: str,
    generated_at_utc: str,
) -> Manifest:
    """
    Return a new manifest where only ``successful_themes`` point at ``date``.

    Themes that failed this run keep their previous entry; ``previous`` is not modified.
    """
    themes = {theme: dict(entry) for theme, entry in previous.themes.items()}
    for theme in successful_themes:
        themes[theme] = {"latest_date": date}
    return Manifest(generated_at_utc=generated_at_utc, themes=themes)


def write_manifest(path: str | Path, manifest: Manifest) -> None:
    write_json(path, manifest.to_dict())
    logger.info(f"Updated {path}")

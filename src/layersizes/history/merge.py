"""Merging freshly analysed images into an existing history."""

from __future__ import annotations

from typing import Dict

from layersizes.models import ImageHistory, ImageHistoryEntry


def merge_history_entry(
    existing: ImageHistory | None,
    image_name: str,
    digest: str,
    entry: ImageHistoryEntry,
) -> ImageHistory:
    """Upsert ``entry`` under ``digest`` and return the resulting history.

    When ``digest`` is already present the tags become the sorted union of
    old and new tags, while contents and inspect info are replaced by the
    new values. ``existing`` itself is left untouched.
    """
    if existing is None:
        return ImageHistory(
            name=image_name,
            history={digest: _copy_entry(entry, sorted(set(entry.tags)))},
        )

    history: Dict[str, ImageHistoryEntry] = {
        key: _copy_entry(value, list(value.tags)) for key, value in existing.history.items()
    }
    previous = history.get(digest)
    tags = set(entry.tags)
    if previous is not None:
        tags |= set(previous.tags)
    merged = _copy_entry(entry, sorted(tags))
    if previous is not None:
        merged.id = previous.id
    history[digest] = merged

    return ImageHistory(name=existing.name, history=history, id=existing.id)


def _copy_entry(entry: ImageHistoryEntry, tags: list[str]) -> ImageHistoryEntry:
    return ImageHistoryEntry(
        tags=tags,
        contents=dict(entry.contents),
        inspect_info=dict(entry.inspect_info),
        id=entry.id,
    )

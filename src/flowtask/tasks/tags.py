# src/flowtask/tasks/tags.py

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from ..api.errors import ValidationError
from .task_models import Tag

logger = logging.getLogger(__name__)

DEFAULT_TAGS: tuple[Tag, ...] = (
    Tag(id="design", name="Design"),
    Tag(id="research", name="Research"),
    Tag(id="frontend", name="Frontend"),
    Tag(id="study", name="Study"),
    Tag(id="personal", name="Personal"),
    Tag(id="wellness", name="Wellness"),
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def normalize_tag_name(name: str) -> str:
    return " ".join((name or "").split()).casefold()


def _slugify(key: str) -> str:
    return _SLUG_RE.sub("-", key).strip("-") or "tag"


class TagRegistry:
    """
    Find-or-create registry for free-text tags.

    Lookup key: trimmed, whitespace-collapsed, case-folded name.
    The first spelling seen becomes the display name.
    """

    def __init__(self, tags: Iterable[Tag] = DEFAULT_TAGS) -> None:
        self._by_key: dict[str, Tag] = {}
        self._ids: set[str] = set()
        for tag in tags:
            self._by_key.setdefault(normalize_tag_name(tag.name), tag)
            self._ids.add(tag.id)

    def all(self) -> list[Tag]:
        return list(self._by_key.values())

    def find(self, name: str) -> Tag | None:
        return self._by_key.get(normalize_tag_name(name))

    def find_or_create(self, name: str) -> Tag:
        key = normalize_tag_name(name)
        if not key:
            raise ValidationError("Tag name cannot be empty", {"field": "tag"})

        existing = self._by_key.get(key)
        if existing is not None:
            return existing

        base = _slugify(key)
        tag_id = base
        n = 2
        while tag_id in self._ids:
            tag_id = f"{base}-{n}"
            n += 1

        tag = Tag(id=tag_id, name=" ".join(name.split()))
        self._by_key[key] = tag
        self._ids.add(tag_id)
        logger.debug("Tag created id=%s name=%s", tag.id, tag.name)
        return tag

    def resolve(self, names: Iterable[str]) -> tuple[Tag, ...]:
        """Tags for `names` in first-seen order; blank names are skipped."""
        out: list[Tag] = []
        seen: set[str] = set()
        for name in names:
            if not normalize_tag_name(name):
                continue
            tag = self.find_or_create(name)
            if tag.id in seen:
                continue
            seen.add(tag.id)
            out.append(tag)
        return tuple(out)

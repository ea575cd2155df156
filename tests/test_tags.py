# tests/test_tags.py

from __future__ import annotations

import pytest

from flowtask.api.errors import ValidationError
from flowtask.tasks.tags import TagRegistry, normalize_tag_name
from flowtask.tasks.task_models import Tag


def test_normalize_tag_name() -> None:
    assert normalize_tag_name("  Deep \t Work ") == "deep work"


def test_find_or_create_is_case_insensitive() -> None:
    reg = TagRegistry()

    assert reg.find_or_create("DESIGN") == Tag(id="design", name="Design")
    created = reg.find_or_create("  Side   Project ")
    assert created == Tag(id="side-project", name="Side Project")
    assert reg.find("side project") is created


def test_slug_collisions_get_a_suffix() -> None:
    reg = TagRegistry(tags=())

    first = reg.find_or_create("deep-work")
    second = reg.find_or_create("Deep Work")

    assert first.id == "deep-work"
    assert second.id == "deep-work-2"


def test_empty_name_is_rejected() -> None:
    with pytest.raises(ValidationError):
        TagRegistry().find_or_create("   ")


def test_resolve_dedups_and_skips_blanks() -> None:
    reg = TagRegistry()

    tags = reg.resolve(["Study", "", "study", "Wellness"])

    assert [t.id for t in tags] == ["study", "wellness"]

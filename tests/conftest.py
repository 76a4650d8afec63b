"""Shared fixtures for the test suite."""

from __future__ import annotations

import pytest

from patch_gate import immutable
from patch_gate.settings import reset_settings_cache


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached; drop the cache around every test."""
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def cat_doc():
    """The stored cat document that patches are validated against."""
    return {
        "id": "k1773y",
        "name": "Cuddles",
        "favoriteToys": ["string"],
        "meta": {
            "born": 1452474481612,
            "weight": 2.1,  # pounds
        },
    }


@pytest.fixture
def cat_schema():
    """Cat schema: id and meta.born may never change."""
    return {
        "type": "object",
        "title": "cat",
        "properties": {
            "id": immutable({"type": "string", "title": "id"}),
            "name": {"type": "string"},
            "description": {"type": "string"},
            "favoriteToys": {
                "type": "array",
                "items": {"type": "string", "title": "toy"},
                "default": [],
            },
            "meta": {
                "type": "object",
                "properties": {
                    "born": immutable({"type": "integer", "exclusiveMinimum": 0}),
                    "weight": {"type": "number", "exclusiveMinimum": 0},
                },
                "required": ["born"],
            },
        },
        "required": ["id", "name"],
    }


@pytest.fixture
def populated_doc():
    """A pre-populated document for testing patches."""
    return {
        "metadata": {"title": "Test", "author": "Bot"},
        "sections": [
            {
                "section_name": "Overview",
                "fields": [
                    {"label": "Revenue", "value": 1000},
                    {"label": "Profit", "value": 200},
                ],
            }
        ],
    }

"""
Per-category result shapes and projection from loosely-typed JSON.

Provider output is parsed to a dict and projected onto the category's
declared field set. Missing or mistyped fields default to an empty value
of the declared shape (list -> [], str -> "") so partial analyses still
complete. Keys outside the declared set are dropped.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from .types import Category


@dataclass
class DiaryResult:
    emotions: list[str] = field(default_factory=list)
    main_events: list[str] = field(default_factory=list)
    relationships: list[str] = field(default_factory=list)
    interests: list[str] = field(default_factory=list)
    psychological_state: str = ""
    insights: str = ""


@dataclass
class NoteResult:
    topics: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    interests: list[str] = field(default_factory=list)
    plans: list[str] = field(default_factory=list)
    thinking_style: str = ""
    insights: str = ""


@dataclass
class TextResult:
    topics: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    summary: str = ""
    insights: str = ""


@dataclass
class ImageResult:
    description: str = ""
    mood: str = ""
    inferred_interests: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    additional_insights: str = ""


def result_type_for(category: Category) -> type:
    """Result dataclass for a category. Raises on an unhandled member."""
    if category is Category.DIARY:
        return DiaryResult
    elif category is Category.NOTE:
        return NoteResult
    elif category is Category.OTHER:
        return TextResult
    elif category is Category.IMAGE:
        return ImageResult
    raise ValueError(f"No result schema for category: {category!r}")


# Fail at import if a category was added without a result schema
for _category in Category:
    result_type_for(_category)
del _category


def _is_list_field(f: dataclasses.Field) -> bool:
    return f.default_factory is list  # type: ignore[comparison-overlap]


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def coerce_list(value: Any) -> list[str]:
    """Coerce a JSON value to a list of non-empty strings.

    A bare string becomes a one-element list; anything that is neither a
    list nor a string becomes an empty list.
    """
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    out = []
    for entry in value:
        text = _as_text(entry)
        if text:
            out.append(text)
    return out


def coerce_str(value: Any) -> str:
    """Coerce a JSON value to a string. Lists are joined with ', '."""
    if isinstance(value, list):
        return ", ".join(coerce_list(value))
    return _as_text(value)


def project(data: Any, result_type: type):
    """Project a parsed JSON object onto a result dataclass."""
    if not isinstance(data, dict):
        data = {}
    kwargs = {}
    for f in dataclasses.fields(result_type):
        raw = data.get(f.name)
        if _is_list_field(f):
            kwargs[f.name] = coerce_list(raw)
        else:
            kwargs[f.name] = coerce_str(raw)
    return result_type(**kwargs)


def project_result(category: Category, data: Any):
    """Project parsed provider output onto the category's result shape."""
    return project(data, result_type_for(category))


def result_to_dict(result) -> dict:
    return dataclasses.asdict(result)


def result_from_dict(category: Category, data: dict):
    """Rebuild a stored result. Uses the same projection, so old rows with
    missing fields load with defaults."""
    return project_result(category, data)


def schema_hint(category: Category) -> dict[str, Any]:
    """Example JSON shape for a category, embedded in prompts."""
    hint: dict[str, Any] = {}
    for f in dataclasses.fields(result_type_for(category)):
        hint[f.name] = ["..."] if _is_list_field(f) else "..."
    return hint

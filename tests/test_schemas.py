"""Tests for per-category result projection."""

import dataclasses

import pytest

from lifelens.schemas import (
    DiaryResult,
    ImageResult,
    NoteResult,
    TextResult,
    coerce_list,
    coerce_str,
    project_result,
    result_to_dict,
    result_type_for,
    schema_hint,
)
from lifelens.types import Category


class TestProjection:
    """Parsed provider output mapped onto declared field sets."""

    def test_diary_missing_fields_default_to_empty(self):
        """Fields the provider left out come back as [] or ""."""
        result = project_result(
            Category.DIARY,
            {"emotions": ["기쁨"], "main_events": ["친구와의 만남"]},
        )
        assert isinstance(result, DiaryResult)
        assert result.emotions == ["기쁨"]
        assert result.main_events == ["친구와의 만남"]
        assert result.relationships == []
        assert result.interests == []
        assert result.psychological_state == ""
        assert result.insights == ""

    def test_unknown_keys_are_dropped(self):
        result = project_result(Category.OTHER, {"summary": "s", "mood": "calm", "score": 3})
        assert result_to_dict(result) == {
            "topics": [], "keywords": [], "summary": "s", "insights": "",
        }

    def test_bare_string_becomes_single_element_list(self):
        result = project_result(Category.NOTE, {"topics": "gardening"})
        assert result.topics == ["gardening"]

    def test_mistyped_fields_default(self):
        """Wrong JSON types never fail the projection."""
        result = project_result(Category.IMAGE, {
            "description": {"nested": True},
            "mood": None,
            "inferred_interests": 42,
            "keywords": ["sea", None, "", 7, {"x": 1}],
        })
        assert isinstance(result, ImageResult)
        assert result.description == ""
        assert result.mood == ""
        assert result.inferred_interests == []
        assert result.keywords == ["sea", "7"]

    def test_non_dict_input_gives_all_defaults(self):
        result = project_result(Category.NOTE, ["not", "an", "object"])
        assert result == NoteResult()

    def test_list_for_string_field_is_joined(self):
        result = project_result(Category.DIARY, {"insights": ["one", "two"]})
        assert result.insights == "one, two"


class TestSchemaTable:
    """Every category has a result type and a prompt hint."""

    @pytest.mark.parametrize("category", list(Category))
    def test_every_category_has_a_result_type(self, category):
        result_type = result_type_for(category)
        assert set(schema_hint(category)) == {f.name for f in dataclasses.fields(result_type)}
        assert project_result(category, {}) == result_type()

    def test_result_types(self):
        assert result_type_for(Category.DIARY) is DiaryResult
        assert result_type_for(Category.NOTE) is NoteResult
        assert result_type_for(Category.OTHER) is TextResult
        assert result_type_for(Category.IMAGE) is ImageResult

    def test_hint_shapes(self):
        hint = schema_hint(Category.DIARY)
        assert hint["emotions"] == ["..."]
        assert hint["psychological_state"] == "..."


class TestCoercion:

    def test_coerce_list_strips_whitespace(self):
        assert coerce_list(["  reading ", "\tfilm"]) == ["reading", "film"]

    def test_coerce_list_rejects_bools(self):
        assert coerce_list([True, "x"]) == ["x"]

    def test_coerce_str_numbers(self):
        assert coerce_str(3) == "3"
        assert coerce_str(None) == ""

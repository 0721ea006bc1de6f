"""
Tests for NameTranslator — logical <-> physical names.
"""

import pytest

from yanuka.db.errors import ConfigurationError
from yanuka.db.names import (
    FIELD_OVERRIDES,
    NameTranslator,
    camel_to_snake,
    default_translator,
    snake_to_camel,
)


class TestCaseRules:
    def test_camel_to_snake(self):
        assert camel_to_snake("imageUrl") == "image_url"
        assert camel_to_snake("hebrewDateText") == "hebrew_date_text"
        assert camel_to_snake("title") == "title"

    def test_snake_to_camel(self):
        assert snake_to_camel("image_url") == "imageUrl"
        assert snake_to_camel("hebrew_date_text") == "hebrewDateText"
        assert snake_to_camel("title") == "title"


class TestOverrides:
    def test_override_wins_over_rule(self):
        assert default_translator.to_physical("isActive") == "active"
        assert default_translator.to_logical("active") == "isActive"

    def test_fallback_for_unmapped_names(self):
        assert default_translator.to_physical("viewCount") == "view_count"
        assert default_translator.to_logical("view_count") == "viewCount"

    def test_collection_names(self):
        assert default_translator.collection_to_table("dailyLearning") == "daily_learning"
        assert default_translator.table_to_collection("daily_learning") == "dailyLearning"
        assert default_translator.collection_to_table("books") == "books"
        assert default_translator.collection_to_table("weeklyParasha") == "weekly_parasha"

    def test_rejects_non_injective_overrides(self):
        with pytest.raises(ConfigurationError):
            NameTranslator({"isActive": "active", "enabled": "active"})

    def test_custom_translator_is_independent(self):
        translator = NameTranslator({"ttl": "time_to_live"})
        assert translator.to_physical("ttl") == "time_to_live"
        assert translator.to_physical("isActive") == "is_active"


class TestRoundTrip:
    """to_logical(to_physical(n)) == n."""

    @pytest.mark.parametrize(
        "name",
        [
            "title",
            "imageUrl",
            "isActive",
            "readBy",
            "createdAt",
            "categoryId",
            "episodeNumber",
            "hebrewDateText",
            "viewCount",
            "a1b2",
        ],
    )
    def test_round_trip(self, name):
        assert default_translator.to_logical(default_translator.to_physical(name)) == name

    def test_every_override_round_trips(self):
        for logical, physical in FIELD_OVERRIDES.items():
            assert default_translator.to_physical(logical) == physical
            assert default_translator.to_logical(physical) == logical

    @pytest.mark.parametrize(
        "name, reason",
        [
            ("active", "reserved for 'isActive'"),
            ("foo_bar", "reads back as 'fooBar'"),
            ("created_at", "reserved for 'createdAt'"),
        ],
    )
    def test_field_that_would_not_round_trip_is_rejected(self, name, reason):
        with pytest.raises(ConfigurationError, match=reason):
            default_translator.to_physical(name)

    def test_collection_that_would_not_round_trip_is_rejected(self):
        with pytest.raises(ConfigurationError, match="reads back as 'fooBar'"):
            default_translator.collection_to_table("foo_bar")
        with pytest.raises(ConfigurationError, match="reserved for 'dailyLearning'"):
            default_translator.collection_to_table("daily_learning")

    def test_override_pins_a_name_the_rule_cannot_round_trip(self):
        translator = NameTranslator({"foo_bar": "foo_bar"})
        assert translator.to_physical("foo_bar") == "foo_bar"
        assert translator.to_logical("foo_bar") == "foo_bar"

"""
Yanuka - Name Translation.

Maps logical (document-store style, camelCase) names onto physical
(relational, snake_case) names and back. This is the only module in the
package that does case conversion.

Lookup order in both directions:
1. Explicit override table (paired entries, checked first)
2. Deterministic camelCase <-> snake_case rule

The physical -> logical direction is total. The logical -> physical direction
rejects a rule-derived name that would not map back (see NameTranslator).
"""

import re

from yanuka.db.errors import ConfigurationError

_UPPER = re.compile(r"[A-Z]")
_SNAKE_SEGMENT = re.compile(r"_([a-z0-9])")


# =============================================================================
# Application name tables
# =============================================================================

# Field names whose physical column is irregular or that we want pinned.
FIELD_OVERRIDES: dict[str, str] = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "imageUrl": "image_url",
    "youtubeUrl": "youtube_url",
    "pdfUrl": "pdf_url",
    "audioUrl": "audio_url",
    "videoUrl": "video_url",
    "hebrewTitle": "hebrew_title",
    "hebrewName": "hebrew_name",
    "hebrewDate": "hebrew_date",
    "isActive": "active",  # irregular: column dropped the "is_" prefix
    "orderIndex": "order_index",
    "userName": "user_name",
    "userEmail": "user_email",
    "userId": "user_id",
    "prayerId": "prayer_id",
    "categoryId": "category_id",
    "motherName": "mother_name",
    "requestText": "request_text",
    "prayerType": "prayer_type",
    "commitmentText": "commitment_text",
    "birthDate": "birth_date",
    "deathDate": "death_date",
    "burialPlace": "burial_place",
    "episodeNumber": "episode_number",
    "readBy": "read_by",
}

COLLECTION_OVERRIDES: dict[str, str] = {
    "prayerCommitments": "prayer_commitments",
    "dailyLearning": "daily_learning",
    "dailyVideos": "daily_videos",
    "dailyInsights": "daily_insights",
    "shortLessons": "short_lessons",
    "longLessons": "long_lessons",
    "pidyonNefesh": "pidyon_nefesh",
    "homeCards": "home_cards",
    "rabbiStudents": "rabbi_students",
    "rabbiStudentVideos": "rabbi_student_videos",
    "beitMidrashVideos": "beit_midrash_videos",
    "appConfig": "app_config",
}


# =============================================================================
# Case rules
# =============================================================================


def camel_to_snake(name: str) -> str:
    """imageUrl -> image_url"""
    return _UPPER.sub(lambda m: f"_{m.group(0).lower()}", name)


def snake_to_camel(name: str) -> str:
    """image_url -> imageUrl"""
    return _SNAKE_SEGMENT.sub(lambda m: m.group(1).upper(), name)


def _invert(pairs: dict[str, str], label: str) -> dict[str, str]:
    inverse: dict[str, str] = {}
    for logical, physical in pairs.items():
        if physical in inverse:
            raise ConfigurationError(
                f"{label} override table maps both '{inverse[physical]}' and "
                f"'{logical}' to '{physical}'"
            )
        inverse[physical] = logical
    return inverse


def _reversible(logical: str, inverse: dict[str, str], label: str) -> str:
    """Rule-based physical name, rejected when it would not map back to logical."""
    physical = camel_to_snake(logical)
    if physical in inverse:
        raise ConfigurationError(
            f"{label} name '{logical}' maps to '{physical}', which is reserved "
            f"for '{inverse[physical]}'"
        )
    if snake_to_camel(physical) != logical:
        raise ConfigurationError(
            f"{label} name '{logical}' maps to '{physical}', which reads back as "
            f"'{snake_to_camel(physical)}'; add an override"
        )
    return physical


# =============================================================================
# Translator
# =============================================================================


class NameTranslator:
    """
    Bidirectional logical <-> physical name mapping.

    Overrides are given as logical -> physical pairs; the reverse table is
    derived, so the two directions cannot drift apart. A table that is not
    one-to-one is rejected at construction.

    The forward direction only returns names that map back:
    ``to_logical(to_physical(n)) == n`` for every name it accepts. A
    fallback name that would come back different raises ConfigurationError,
    e.g. "foo_bar" (returns as "fooBar") or a logical "active" next to the
    isActive -> active override (returns as "isActive"). Pin such names
    with an override instead.
    """

    def __init__(
        self,
        field_overrides: dict[str, str] | None = None,
        collection_overrides: dict[str, str] | None = None,
    ):
        self._fields = dict(field_overrides or {})
        self._fields_inv = _invert(self._fields, "field")
        self._collections = dict(collection_overrides or {})
        self._collections_inv = _invert(self._collections, "collection")

    def to_physical(self, logical_name: str) -> str:
        if logical_name in self._fields:
            return self._fields[logical_name]
        return _reversible(logical_name, self._fields_inv, "Field")

    def to_logical(self, physical_name: str) -> str:
        if physical_name in self._fields_inv:
            return self._fields_inv[physical_name]
        return snake_to_camel(physical_name)

    def collection_to_table(self, collection: str) -> str:
        if collection in self._collections:
            return self._collections[collection]
        return _reversible(collection, self._collections_inv, "Collection")

    def table_to_collection(self, table: str) -> str:
        if table in self._collections_inv:
            return self._collections_inv[table]
        return snake_to_camel(table)


default_translator = NameTranslator(FIELD_OVERRIDES, COLLECTION_OVERRIDES)

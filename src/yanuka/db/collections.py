"""
Yanuka - Collection Registry.

Describes how each logical collection is stored:
- which physical table backs it
- which encoding the table uses (flat typed columns vs one JSON column)
- which columns live outside a JSON blob (id, timestamps, parent reference)

Also holds the static registry of emulated subcollections.
"""

from dataclasses import dataclass, field
from enum import Enum

from yanuka.db.errors import UnregisteredSubcollection
from yanuka.db.names import NameTranslator, default_translator


class Encoding(str, Enum):
    """Physical storage strategy for a collection's documents."""

    FLAT_COLUMNS = "flat_columns"
    JSON_COLUMN = "json_column"


# Physical columns that always exist outside the payload
ID_COLUMN = "id"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"
DATA_COLUMN = "data"

# Application collections, one table each
APP_COLLECTIONS = [
    "books",
    "music",
    "newsletters",
    "news",
    "prayers",
    "prayerCommitments",
    "dailyLearning",
    "dailyVideos",
    "dailyInsights",
    "shortLessons",
    "longLessons",
    "tzadikim",
    "notifications",
    "pidyonNefesh",
    "homeCards",
    "chidushim",
    "rabbiStudents",
    "rabbiStudentVideos",
    "beitMidrashVideos",
    "hoduLaHashem",
    "dailySummary",
    "baalShemTovStories",
]

# Collections whose documents carry createdAt/updatedAt (written by the
# admin forms, shown and sorted on by the screens)
DATED_COLLECTIONS = {
    "news",
    "newsletters",
    "prayers",
    "prayerCommitments",
    "notifications",
    "pidyonNefesh",
    "shortLessons",
    "longLessons",
    "rabbiStudentVideos",
    "hoduLaHashem",
    "dailySummary",
    "baalShemTovStories",
}

APP_CONFIG_COLLECTION = "appConfig"


@dataclass(frozen=True)
class CollectionDescriptor:
    """
    Storage description of one logical collection.

    Attributes:
        logical_name: Name callers use (e.g., "dailyLearning")
        table: Physical table (e.g., "daily_learning")
        encoding: FLAT_COLUMNS or JSON_COLUMN
        parent_column: Physical FK column for subcollection tables (e.g., "category_id")
        optional: A missing table reads as empty instead of failing
        expose_timestamps: Documents carry createdAt/updatedAt (decoded and
            accepted from callers); otherwise caller timestamps are rejected
    """

    logical_name: str
    table: str
    encoding: Encoding = Encoding.JSON_COLUMN
    parent_column: str | None = None
    optional: bool = False
    expose_timestamps: bool = False

    @property
    def is_json(self) -> bool:
        return self.encoding == Encoding.JSON_COLUMN

    def outside_columns(self, translator: NameTranslator) -> dict[str, str]:
        """
        Logical -> physical names of fields stored as real columns even in
        JSON encoding (they never enter the blob).
        """
        columns = {
            "id": ID_COLUMN,
            translator.to_logical(CREATED_AT_COLUMN): CREATED_AT_COLUMN,
            translator.to_logical(UPDATED_AT_COLUMN): UPDATED_AT_COLUMN,
        }
        if self.parent_column:
            columns[translator.to_logical(self.parent_column)] = self.parent_column
        return columns


@dataclass(frozen=True)
class SubcollectionRelation:
    """
    A two-level path emulated with a flat table keyed by a parent column.

    rabbiStudents/{id}/videos  ->  rabbi_student_videos WHERE category_id = {id}
    """

    parent: str
    name: str
    collection: str
    parent_field: str


@dataclass
class CollectionRegistry:
    """
    Resolves logical collection names to descriptors.

    Unregistered collections fall back to a translator-derived table name
    and the registry's default encoding.
    """

    translator: NameTranslator = field(default_factory=lambda: default_translator)
    default_encoding: Encoding = Encoding.JSON_COLUMN
    _collections: dict[str, CollectionDescriptor] = field(
        default_factory=dict, init=False, repr=False
    )
    _relations: dict[tuple[str, str], SubcollectionRelation] = field(
        default_factory=dict, init=False, repr=False
    )

    def register(
        self,
        logical_name: str,
        encoding: Encoding | None = None,
        table: str | None = None,
        **options,
    ) -> CollectionDescriptor:
        descriptor = CollectionDescriptor(
            logical_name=logical_name,
            table=table or self.translator.collection_to_table(logical_name),
            encoding=encoding or self.default_encoding,
            **options,
        )
        self._collections[logical_name] = descriptor
        return descriptor

    def register_subcollection(
        self,
        parent: str,
        name: str,
        collection: str,
        parent_field: str,
    ) -> SubcollectionRelation:
        """
        Register parent/name as an emulated subcollection.

        The target collection is (re)registered with the parent column so the
        codec and compiler treat it as a real column.
        """
        target = self.get(collection)
        parent_column = self.translator.to_physical(parent_field)
        if target.parent_column != parent_column:
            self.register(
                collection,
                encoding=target.encoding,
                table=target.table,
                parent_column=parent_column,
                optional=target.optional,
                expose_timestamps=target.expose_timestamps,
            )
        relation = SubcollectionRelation(parent, name, collection, parent_field)
        self._relations[(parent, name)] = relation
        return relation

    def get(self, logical_name: str) -> CollectionDescriptor:
        descriptor = self._collections.get(logical_name)
        if descriptor is None:
            descriptor = CollectionDescriptor(
                logical_name=logical_name,
                table=self.translator.collection_to_table(logical_name),
                encoding=self.default_encoding,
            )
        return descriptor

    def relation(self, parent: str, name: str) -> SubcollectionRelation:
        try:
            return self._relations[(parent, name)]
        except KeyError:
            raise UnregisteredSubcollection(parent, name) from None


def default_registry(
    encoding: Encoding = Encoding.JSON_COLUMN,
    translator: NameTranslator | None = None,
) -> CollectionRegistry:
    """
    Registry for the application's collections.

    Content collections share one encoding; the singleton configuration row
    is always flat columns and tolerates a missing table.
    """
    registry = CollectionRegistry(
        translator=translator or default_translator,
        default_encoding=encoding,
    )
    for name in APP_COLLECTIONS:
        registry.register(name, expose_timestamps=name in DATED_COLLECTIONS)

    registry.register(
        APP_CONFIG_COLLECTION,
        encoding=Encoding.FLAT_COLUMNS,
        optional=True,
        expose_timestamps=True,
    )
    registry.register_subcollection(
        parent="rabbiStudents",
        name="videos",
        collection="rabbiStudentVideos",
        parent_field="categoryId",
    )
    return registry

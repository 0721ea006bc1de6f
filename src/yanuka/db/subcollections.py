"""
Yanuka - Subcollection Emulation.

The document store nested child documents under a parent:

    rabbiStudents/{studentId}/videos/{videoId}

The relational schema flattens each registered child path into one table
with a parent-reference column. Every call here is rewritten into a
DocumentRepository call on that table with ``parent_field == parent_id``
prepended to the predicates. Caller predicates on the parent field are
dropped, so a query can never escape its parent.

Only registered (parent, name) pairs are valid; anything else raises
UnregisteredSubcollection before the store is touched.
"""

import logging

from yanuka.db.collections import CollectionRegistry, SubcollectionRelation
from yanuka.db.query import Operator, QuerySpec, WhereClause, coerce_where
from yanuka.db.repository import DocumentRepository

logger = logging.getLogger(__name__)


class SubcollectionEmulator:
    def __init__(self, repository: DocumentRepository, registry: CollectionRegistry | None = None):
        self._repo = repository
        self.registry = registry or repository.registry

    def relation(self, parent_collection: str, name: str) -> SubcollectionRelation:
        return self.registry.relation(parent_collection, name)

    def _scoped_where(self, relation: SubcollectionRelation, parent_id: str, where) -> list[WhereClause]:
        scope = WhereClause(field=relation.parent_field, op=Operator.EQ, value=parent_id)
        caller = [coerce_where(clause) for clause in where or []]
        dropped = [clause for clause in caller if clause.field == relation.parent_field]
        if dropped:
            logger.debug(f"Ignoring caller predicates on {relation.parent_field}: {dropped}")
        return [scope, *(clause for clause in caller if clause.field != relation.parent_field)]

    async def list_sub(
        self,
        parent_collection: str,
        parent_id: str,
        name: str,
        spec: QuerySpec | dict | None = None,
    ) -> list[dict]:
        relation = self.relation(parent_collection, name)
        spec = QuerySpec.coerce(spec)
        scoped = spec.model_copy(update={"where": self._scoped_where(relation, parent_id, spec.where)})
        return await self._repo.list(relation.collection, scoped)

    async def insert_sub(
        self,
        parent_collection: str,
        parent_id: str,
        name: str,
        fields: dict,
    ) -> dict:
        """Insert under the parent. The parent reference always wins over fields."""
        relation = self.relation(parent_collection, name)
        return await self._repo.insert(relation.collection, {**fields, relation.parent_field: parent_id})

    async def get_sub(self, parent_collection: str, parent_id: str, name: str, doc_id: str) -> dict | None:
        """One child document, or None if it doesn't exist under this parent."""
        relation = self.relation(parent_collection, name)
        docs = await self._repo.list(
            relation.collection,
            QuerySpec(
                where=self._scoped_where(relation, parent_id, [("id", Operator.EQ, doc_id)]),
                limit=1,
            ),
        )
        return docs[0] if docs else None

    async def count_sub(self, parent_collection: str, parent_id: str, name: str, where=None) -> int:
        relation = self.relation(parent_collection, name)
        return await self._repo.count(relation.collection, self._scoped_where(relation, parent_id, where))

"""
Yanuka - Document Codec.

Converts physical rows into logical documents ({"id": ..., **fields}) and
logical fields back into physical rows.

FLAT_COLUMNS
    decode: id passes through, every other column is renamed to its logical
            name. Values are not coerced.
    update: only the supplied columns are written; no pre-read is needed.

JSON_COLUMN
    decode: {"id": row["id"], **row["data"]}
    update: the store can't merge inside an opaque blob, so the caller must
            pass the current document; the partial fields are shallow-merged
            on top and the whole blob is written back. This read-before-write
            is NOT atomic: two concurrent updates of the same document can
            lose one of the writes.

In both encodings the id never enters the payload, and a subcollection's
parent reference and the createdAt/updatedAt timestamps are routed to their
own columns. Timestamps behave the same in both encodings:

- collections with expose_timestamps decode created_at/updated_at as
  createdAt/updatedAt and accept caller-supplied values on insert
  (createdAt also on update);
- every other collection hides the timestamp columns and rejects
  caller-supplied timestamps with ConfigurationError.

updatedAt is never accepted in an update: the repository refreshes it.
"""

import json
import logging
import secrets
import string
import time
from typing import Any

from yanuka.db.collections import (
    CREATED_AT_COLUMN,
    DATA_COLUMN,
    ID_COLUMN,
    UPDATED_AT_COLUMN,
    CollectionDescriptor,
)
from yanuka.db.errors import ConfigurationError
from yanuka.db.names import NameTranslator, default_translator

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LENGTH = 9

TIMESTAMP_COLUMNS = (CREATED_AT_COLUMN, UPDATED_AT_COLUMN)


def generate_id() -> str:
    """
    New document id: millisecond timestamp + base-36 random suffix.

    e.g. "1760891234567_k3j9x0a2b"
    """
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"{int(time.time() * 1000)}_{suffix}"


def _load_blob(raw: Any) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, str):
        raw = json.loads(raw)
    return dict(raw)


class DocumentCodec:
    """Row <-> document conversion for both encodings."""

    def __init__(self, translator: NameTranslator | None = None):
        self.translator = translator or default_translator
        # logical name -> managed column, e.g. createdAt -> created_at
        self.timestamp_fields = {
            self.translator.to_logical(column): column for column in TIMESTAMP_COLUMNS
        }

    # -------------------------------------------------------------------------
    # Decode
    # -------------------------------------------------------------------------

    def decode(self, row: dict | None, descriptor: CollectionDescriptor) -> dict | None:
        if row is None:
            return None
        if descriptor.is_json:
            return self._decode_json(row, descriptor)
        return self._decode_flat(row, descriptor)

    def _decode_flat(self, row: dict, descriptor: CollectionDescriptor) -> dict:
        doc: dict[str, Any] = {}
        for column, value in row.items():
            if column == ID_COLUMN:
                doc["id"] = value
            elif column in TIMESTAMP_COLUMNS and not descriptor.expose_timestamps:
                continue
            else:
                doc[self.translator.to_logical(column)] = value
        return doc

    def _decode_json(self, row: dict, descriptor: CollectionDescriptor) -> dict:
        doc: dict[str, Any] = {"id": row.get(ID_COLUMN)}
        if descriptor.parent_column and descriptor.parent_column in row:
            doc[self.translator.to_logical(descriptor.parent_column)] = row[descriptor.parent_column]
        doc.update(_load_blob(row.get(DATA_COLUMN)))
        # id lives in its own column; a stray "id" key in the blob never wins
        doc["id"] = row.get(ID_COLUMN)

        # Rows written before timestamps moved out of the blob may still
        # carry them inside it; the column wins when both exist.
        for name, column in self.timestamp_fields.items():
            legacy = doc.pop(name, None)
            if not descriptor.expose_timestamps:
                continue
            value = row.get(column) or legacy
            if value is not None:
                doc[name] = value
        return doc

    # -------------------------------------------------------------------------
    # Encode
    # -------------------------------------------------------------------------

    def encode_insert(
        self,
        fields: dict,
        descriptor: CollectionDescriptor,
    ) -> tuple[str, dict]:
        """
        Build the row for a new document.

        Returns (id, row). An id is generated when fields carry none.
        """
        fields = dict(fields)
        doc_id = fields.pop("id", None) or generate_id()
        self._check_timestamps(fields, descriptor)

        if descriptor.is_json:
            row, blob = self._split_outside(fields, descriptor)
            row[DATA_COLUMN] = blob
        else:
            row = self._to_columns(fields)

        row[ID_COLUMN] = doc_id
        return doc_id, row

    def encode_update(
        self,
        partial: dict,
        descriptor: CollectionDescriptor,
        current: dict | None = None,
    ) -> dict:
        """
        Build the partial row for a merge update.

        JSON_COLUMN requires ``current`` (the decoded document as last read).
        """
        partial = {k: v for k, v in partial.items() if k != "id"}
        self._check_timestamps(partial, descriptor, updating=True)

        if not descriptor.is_json:
            return self._to_columns(partial)

        if current is None:
            raise ValueError(
                f"JSON-encoded update of '{descriptor.logical_name}' needs the current document"
            )
        row, blob_updates = self._split_outside(partial, descriptor)
        _, current_blob = self._split_outside(
            {k: v for k, v in current.items() if k != "id"}, descriptor
        )
        row[DATA_COLUMN] = {**current_blob, **blob_updates}
        return row

    def _check_timestamps(self, fields: dict, descriptor: CollectionDescriptor, updating: bool = False) -> None:
        supplied = sorted(name for name in self.timestamp_fields if name in fields)
        if not supplied:
            return
        if not descriptor.expose_timestamps:
            raise ConfigurationError(
                f"'{descriptor.logical_name}' does not store document timestamps; "
                f"remove {supplied} or register the collection with expose_timestamps"
            )
        managed = self.translator.to_logical(UPDATED_AT_COLUMN)
        if updating and managed in fields:
            raise ConfigurationError(
                f"{managed} is refreshed on every update of '{descriptor.logical_name}' "
                f"and cannot be set by the caller"
            )

    def _to_columns(self, fields: dict) -> dict:
        return {self.translator.to_physical(name): value for name, value in fields.items()}

    def _split_outside(self, fields: dict, descriptor: CollectionDescriptor) -> tuple[dict, dict]:
        """Separate real-column fields (parent reference, timestamps) from the blob payload."""
        routed = dict(self.timestamp_fields)
        if descriptor.parent_column:
            routed[self.translator.to_logical(descriptor.parent_column)] = descriptor.parent_column
        row: dict[str, Any] = {}
        blob: dict[str, Any] = {}
        for name, value in fields.items():
            if name in routed:
                row[routed[name]] = value
            else:
                blob[name] = value
        return row, blob

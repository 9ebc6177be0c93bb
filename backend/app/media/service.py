"""DuckDB-backed media record store.

Payloads are stored base64-encoded in a VARCHAR column next to their
metadata, one row per (owner, field type) slot.

Database Schema:
    media_files table:
        - filename: {ownerId}_{fieldType}.{ext}
        - data: base64 payload
        - mimetype, size
        - owner_id, account_id, field_type
        - created_at, updated_at (UTC)

Replacing a slot deletes every row of that owner and field type whose
filename starts with ``{ownerId}_{fieldType}.`` and inserts the new row
inside one transaction, so a concurrent reader sees either the old file or
the new one, never an empty slot or a mix.

Thread Safety:
    A single connection is shared behind a ``threading.Lock``.
"""
import base64
import binascii
import logging
import threading
from datetime import datetime
from typing import Optional, Union

import duckdb

from app.errors import InvalidTypeError, NotFoundError, StoreFailureError

from .schemas import (
    FieldType,
    MediaRecord,
    MediaSummary,
    PutResult,
    UploadPolicy,
    canonical_filename,
    filename_prefix,
    resolve_extension,
)

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS media_files (
    filename    VARCHAR NOT NULL,
    data        VARCHAR NOT NULL,
    mimetype    VARCHAR NOT NULL,
    size        BIGINT NOT NULL,
    owner_id    VARCHAR NOT NULL,
    account_id  VARCHAR,
    field_type  VARCHAR NOT NULL,
    created_at  TIMESTAMP NOT NULL,
    updated_at  TIMESTAMP NOT NULL
)
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_media_files_owner ON media_files(owner_id)"

_SUMMARY_COLUMNS = "filename, mimetype, size, owner_id, field_type"
_RECORD_COLUMNS = (
    "filename, mimetype, size, owner_id, field_type, "
    "data, account_id, created_at, updated_at"
)


class MediaStore:
    """Owner-scoped media slots with whole-slot replace semantics.

    Args:
        connection: Open DuckDB connection (or cursor) to use.
        policy: Type and size rules applied by :meth:`put`.
    """

    def __init__(
        self,
        connection: duckdb.DuckDBPyConnection,
        policy: Optional[UploadPolicy] = None,
    ) -> None:
        self._conn = connection
        self.policy = policy or UploadPolicy()
        self._lock = threading.Lock()
        self._conn.execute(_CREATE_TABLE)
        self._conn.execute(_INDEX)

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def put(
        self,
        owner_id: str,
        field_type: Union[FieldType, str],
        content: bytes,
        mimetype: str,
        declared_name: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> PutResult:
        """Validate and store *content* as the owner's file for *field_type*.

        Any previous file in the slot is replaced, whatever its extension.

        Args:
            owner_id: Owner identity the file belongs to.
            field_type: Slot to fill.
            content: Fully read payload.
            mimetype: MIME type declared by the client.
            declared_name: Client filename, used only for the extension
                fallback.
            account_id: Uploader's account, stored for reference.

        Returns:
            PutResult with the canonical filename and stored size.

        Raises:
            InvalidTypeError: Unknown slot, or mimetype not allowed in it.
            TooLargeError: Payload over the limit for its media kind.
            StoreFailureError: The database rejected the replace.
        """
        try:
            slot = FieldType(field_type)
        except ValueError:
            raise InvalidTypeError(f"Invalid field type: {field_type}")

        size = len(content)
        self.policy.validate(slot, mimetype, size)

        filename = canonical_filename(owner_id, slot, resolve_extension(mimetype, declared_name))
        prefix = filename_prefix(owner_id, slot)
        encoded = base64.b64encode(content).decode("ascii")
        now = datetime.utcnow()

        with self._lock:
            try:
                self._conn.begin()
                self._conn.execute(
                    """
                    DELETE FROM media_files
                    WHERE starts_with(filename, ?) AND owner_id = ? AND field_type = ?
                    """,
                    [prefix, owner_id, slot.value],
                )
                self._conn.execute(
                    """
                    INSERT INTO media_files
                      (filename, data, mimetype, size, owner_id, account_id,
                       field_type, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [filename, encoded, mimetype, size, owner_id, account_id, slot.value, now, now],
                )
                self._conn.commit()
            except duckdb.Error as e:
                self._rollback()
                logger.error(f"Failed to store {filename}: {e}")
                raise StoreFailureError() from e

        logger.info(f"Stored media {filename} ({size} bytes, {mimetype}) for owner {owner_id}")
        return PutResult(filename=filename, size=size, mimetype=mimetype)

    def delete(self, filename: str, owner_id: str) -> None:
        """Delete *filename* if and only if it belongs to *owner_id*.

        Raises:
            NotFoundError: The file does not exist or belongs to someone
                else; the two cases are indistinguishable to the caller.
        """
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT count(*) FROM media_files WHERE filename = ? AND owner_id = ?",
                    [filename, owner_id],
                ).fetchone()
                if not row or row[0] == 0:
                    raise NotFoundError("File not found or access denied")
                self._conn.execute(
                    "DELETE FROM media_files WHERE filename = ? AND owner_id = ?",
                    [filename, owner_id],
                )
            except duckdb.Error as e:
                logger.error(f"Failed to delete {filename}: {e}")
                raise StoreFailureError("Failed to delete file") from e

        logger.info(f"Deleted media {filename} for owner {owner_id}")

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except duckdb.Error as e:
            logger.debug(f"Rollback failed: {e}")

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get(self, filename: str) -> MediaRecord:
        """Fetch a record by exact filename, else by ``{filename}.`` prefix.

        The prefix fallback lets clients that know the logical name
        (``{ownerId}_{fieldType}``) but not the stored extension fetch it.
        It only matches the slot with exactly that logical name, so
        ``bob_main`` never resolves to ``bob_main.x_main.jpg``.

        Raises:
            NotFoundError: Neither lookup matched.
        """
        row = self._fetch_one(_RECORD_COLUMNS, filename)
        if row is None:
            raise NotFoundError()
        return MediaRecord(
            filename=row[0],
            mimetype=row[1],
            size=row[2],
            owner_id=row[3],
            field_type=FieldType(row[4]),
            data=self._decode(row[0], row[5]),
            account_id=row[6],
            created_at=row[7],
            updated_at=row[8],
        )

    def find_summary(self, filename: str) -> MediaSummary:
        """Metadata for *filename* (same matching as :meth:`get`), no payload.

        Raises:
            NotFoundError: No matching record.
        """
        row = self._fetch_one(_SUMMARY_COLUMNS, filename)
        if row is None:
            raise NotFoundError()
        return MediaSummary(
            filename=row[0],
            mimetype=row[1],
            size=row[2],
            owner_id=row[3],
            field_type=FieldType(row[4]),
        )

    def count_slot(self, owner_id: str, field_type: FieldType) -> int:
        """Number of stored rows for one slot (0 or 1 when healthy)."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT count(*) FROM media_files
                WHERE starts_with(filename, ?) AND owner_id = ? AND field_type = ?
                """,
                [filename_prefix(owner_id, field_type), owner_id, field_type.value],
            ).fetchone()
        return row[0] if row else 0

    def _fetch_one(self, columns: str, filename: str) -> Optional[tuple]:
        with self._lock:
            try:
                row = self._conn.execute(
                    f"SELECT {columns} FROM media_files WHERE filename = ?",
                    [filename],
                ).fetchone()
                if row is None:
                    row = self._conn.execute(
                        f"""
                        SELECT {columns} FROM media_files
                        WHERE starts_with(filename, ?)
                          AND concat(owner_id, '_', field_type) = ?
                        ORDER BY updated_at DESC
                        LIMIT 1
                        """,
                        [f"{filename}.", filename],
                    ).fetchone()
            except duckdb.Error as e:
                logger.error(f"Failed to read {filename}: {e}")
                raise StoreFailureError("Failed to read file") from e
        return row

    @staticmethod
    def _decode(filename: str, encoded: str) -> bytes:
        try:
            return base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            logger.error(f"Stored payload for {filename} is not valid base64: {e}")
            raise StoreFailureError("Stored file is corrupt") from e

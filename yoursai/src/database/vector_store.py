"""
YoursAI - Knowledge Vector Store
=================================
LanceDB-backed store for owner-partitioned knowledge chunks, providing:
  • A bounded, thread-safe connection pool shared by every request
  • Owner-scoped nearest-neighbour search (L2, ascending distance)
  • Buffered transactions whose commit is a single atomic table append

Design decisions:
  • **One lazy connection** — ``LanceConnectionPool`` opens the
    ``lancedb.DBConnection`` on first use under a double-checked lock.
    A failed open is not cached; the next caller tries again.
  • **Bounded leases** — at most ``max_open`` table handles are leased
    at once, at most ``max_idle`` are kept for reuse, and each handle is
    retired after ``max_lifetime`` seconds.
  • **All-or-nothing ingest** — rows are validated and buffered in a
    ``KnowledgeTransaction``; LanceDB appends are atomic per call, so
    ``commit()`` either makes every chunk visible or none of them.
  • **Owner isolation** — every query pre-filters on ``owner`` before
    the vector search runs.

Every method here blocks; async callers go through ``asyncio.to_thread``.

Usage:
    pool = LanceConnectionPool()
    store = KnowledgeVectorStore(pool)
    with store.transaction() as tx:
        tx.insert("chunk text", vector, "handbook.md", "user-123")
        tx.commit()
    hits = store.nearest(query_vector, owner="user-123", k=3)
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from types import TracebackType

import lancedb
import pyarrow as pa

from yoursai.config.settings import settings
from yoursai.src.core.embedding import validate_dimension
from yoursai.src.core.errors import RetrievalError, StorageError
from yoursai.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
KnowledgeRecord = dict[str, str | list[float]]


# ── LanceDB Table Schema ──────────────────────────────────────────────

def build_schema(dimension: int) -> pa.Schema:
    """Fixed table layout; the vector width is the embedding dimension."""
    return pa.schema([
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        pa.field("content", pa.utf8()),
        pa.field("document_name", pa.utf8()),
        pa.field("owner", pa.utf8()),
    ])


def _quote(value: str) -> str:
    """SQL string literal for a LanceDB filter expression."""
    return "'" + value.replace("'", "''") + "'"


@dataclass(frozen=True)
class KnowledgeHit:
    """One search result."""

    content: str
    document_name: str
    distance: float


# ══════════════════════════════════════════════════════════════════════
#  CONNECTION POOL
# ══════════════════════════════════════════════════════════════════════


class LanceConnectionPool:
    """
    Process-wide LanceDB connection with bounded table-handle leases.

    Parameters
    ----------
    db_path
        Database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Knowledge table.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    dimension
        Vector width of the table schema.  Defaults to
        ``settings.EMBEDDING_DIMENSION``.
    max_open, max_idle, max_lifetime
        Lease bounds.  Default to ``DB_MAX_OPEN_CONNS``,
        ``DB_MAX_IDLE_CONNS`` and ``DB_CONN_MAX_LIFETIME_SECONDS``.
    """

    __slots__ = ("_db_path", "_table_name", "_dimension", "_schema", "_max_idle", "_max_lifetime", "_lock", "_db", "_leases", "_idle")

    def __init__(self, db_path: str | Path | None = None, table_name: str | None = None, dimension: int | None = None, max_open: int | None = None, max_idle: int | None = None, max_lifetime: float | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._dimension: int = dimension or settings.EMBEDDING_DIMENSION
        self._schema: pa.Schema = build_schema(self._dimension)
        self._max_idle: int = max_idle if max_idle is not None else settings.DB_MAX_IDLE_CONNS
        self._max_lifetime: float = max_lifetime if max_lifetime is not None else settings.DB_CONN_MAX_LIFETIME_SECONDS
        self._lock = threading.Lock()
        self._db: lancedb.DBConnection | None = None
        self._leases = threading.BoundedSemaphore(max_open or settings.DB_MAX_OPEN_CONNS)
        self._idle: deque[tuple[lancedb.table.Table, float]] = deque()


    @property
    def table_name(self) -> str:
        return self._table_name


    @property
    def dimension(self) -> int:
        return self._dimension


    @property
    def schema(self) -> pa.Schema:
        return self._schema


    def _connection(self) -> lancedb.DBConnection:
        """
        Return the shared ``DBConnection``, opening it on first use.

        Concurrent first callers block on the lock; only one of them
        opens the connection.  If the open raises, nothing is cached.
        """
        if self._db is None:
            with self._lock:
                if self._db is None:
                    t0 = time.perf_counter()
                    logger.info("Opening LanceDB connection: %s", self._db_path)
                    Path(self._db_path).mkdir(parents=True, exist_ok=True)
                    # Zero interval: every read sees the latest committed version
                    self._db = lancedb.connect(self._db_path, read_consistency_interval=timedelta(0))
                    logger.info("LanceDB connection ready in %.2fs", time.perf_counter() - t0)
        return self._db


    def _open_table(self) -> lancedb.table.Table:
        db = self._connection()
        if self._table_name not in db:
            with self._lock:
                if self._table_name not in db:
                    logger.info("Creating table '%s' (dim=%d).", self._table_name, self._dimension)
                    return db.create_table(self._table_name, schema=self._schema, exist_ok=True)
        return db.open_table(self._table_name)


    def ensure_ready(self) -> None:
        """
        Open the connection and make sure the knowledge table exists.

        Raises
        ------
        StorageError
            The database could not be opened or the table created.
        """
        try:
            with self.acquire():
                pass
        except Exception as exc:
            raise StorageError(f"Database connection failed: {exc}") from exc


    @contextmanager
    def acquire(self) -> Iterator[lancedb.table.Table]:
        """
        Lease a table handle for the duration of the ``with`` block.

        Blocks while ``max_open`` handles are already leased.
        """
        self._leases.acquire()
        try:
            table, opened_at = self._checkout()
            yield table
            # Handles leased to a failing block are discarded, not reused
            self._checkin(table, opened_at)
        finally:
            self._leases.release()


    def _checkout(self) -> tuple[lancedb.table.Table, float]:
        now = time.monotonic()
        with self._lock:
            while self._idle:
                table, opened_at = self._idle.popleft()
                if now - opened_at < self._max_lifetime:
                    return table, opened_at
                logger.debug("Retiring table handle older than %.0fs", self._max_lifetime)
        return self._open_table(), now


    def _checkin(self, table: lancedb.table.Table, opened_at: float) -> None:
        if time.monotonic() - opened_at >= self._max_lifetime:
            return
        with self._lock:
            if len(self._idle) < self._max_idle:
                self._idle.append((table, opened_at))


    @property
    def idle_count(self) -> int:
        return len(self._idle)


    def drop_table(self) -> bool:
        """Drop the knowledge table.  Returns ``False`` when it did not exist."""
        with self._lock:
            self._idle.clear()
        try:
            db = self._connection()
            if self._table_name not in db:
                logger.warning("Table '%s' does not exist — nothing to drop.", self._table_name)
                return False
            db.drop_table(self._table_name)
        except Exception as exc:
            raise StorageError(f"Failed to drop table '{self._table_name}': {exc}") from exc
        logger.info("Dropped table '%s'.", self._table_name)
        return True


    def close(self) -> None:
        """Forget idle handles and the connection; the next use reopens."""
        with self._lock:
            self._idle.clear()
            self._db = None


    def __repr__(self) -> str:
        return f"LanceConnectionPool(db='{self._db_path}', table='{self._table_name}', idle={len(self._idle)})"


# ══════════════════════════════════════════════════════════════════════
#  TRANSACTION
# ══════════════════════════════════════════════════════════════════════


class KnowledgeTransaction:
    """
    Buffered batch of knowledge rows, written by one atomic append.

    Use as a context manager: leaving the block without ``commit()``
    (or through an exception) rolls back.
    """

    __slots__ = ("_pool", "_rows", "_committed")

    def __init__(self, pool: LanceConnectionPool) -> None:
        self._pool = pool
        self._rows: list[KnowledgeRecord] = []
        self._committed = False


    def __len__(self) -> int:
        return len(self._rows)


    def insert(self, content: str, embedding: list[float], document_name: str, owner: str) -> None:
        """
        Buffer one chunk.

        Raises
        ------
        EmbeddingDimensionError
            *embedding* does not match the table's vector width.
        StorageError
            The transaction was already committed.
        """
        if self._committed:
            raise StorageError("Transaction already committed")
        validate_dimension(embedding, self._pool.dimension)
        self._rows.append({"vector": list(embedding), "content": content, "document_name": document_name, "owner": owner})


    def commit(self) -> int:
        """
        Append every buffered row in a single write.

        Returns
        -------
        int
            Number of rows written.

        Raises
        ------
        StorageError
            The write failed; nothing was made visible.
        """
        if self._committed:
            raise StorageError("Transaction already committed")
        if not self._rows:
            self._committed = True
            return 0

        t0 = time.perf_counter()
        try:
            batch = pa.Table.from_pylist(self._rows, schema=self._pool.schema)
            with self._pool.acquire() as table:
                table.add(batch)
        except Exception as exc:
            raise StorageError(f"Failed to commit {len(self._rows)} rows: {exc}") from exc

        written = len(self._rows)
        self._rows = []
        self._committed = True
        logger.info("Committed %d rows to '%s' in %.2fs", written, self._pool.table_name, time.perf_counter() - t0)
        return written


    def rollback(self) -> None:
        if self._rows:
            logger.warning("Rolling back %d buffered rows", len(self._rows))
        self._rows = []


    def __enter__(self) -> KnowledgeTransaction:
        return self


    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None) -> None:
        if exc_type is not None or not self._committed:
            self.rollback()


# ══════════════════════════════════════════════════════════════════════
#  STORE
# ══════════════════════════════════════════════════════════════════════


class KnowledgeVectorStore:
    """
    Owner-partitioned knowledge table.

    Parameters
    ----------
    pool : LanceConnectionPool
        Shared pool built at application startup.
    """

    __slots__ = ("_pool",)

    def __init__(self, pool: LanceConnectionPool) -> None:
        self._pool = pool


    @property
    def pool(self) -> LanceConnectionPool:
        return self._pool


    def transaction(self) -> KnowledgeTransaction:
        """
        Start a buffered transaction.

        Raises
        ------
        StorageError
            The database is unreachable.
        """
        self._pool.ensure_ready()
        return KnowledgeTransaction(self._pool)


    def insert(self, content: str, embedding: list[float], document_name: str, owner: str) -> None:
        """Insert a single chunk (a one-row transaction)."""
        with self.transaction() as tx:
            tx.insert(content, embedding, document_name, owner)
            tx.commit()


    def nearest(self, embedding: list[float], owner: str, k: int) -> list[KnowledgeHit]:
        """
        Return the *k* chunks of *owner* closest to *embedding*.

        Raises
        ------
        RetrievalError
            The query could not be run.
        """
        t0 = time.perf_counter()
        where = f"owner = {_quote(owner)}"
        try:
            with self._pool.acquire() as table:
                rows = table.search(embedding).where(where, prefilter=True).limit(k).to_list()
        except Exception as exc:
            raise RetrievalError(f"Vector search failed: {exc}") from exc

        hits = [KnowledgeHit(content=row["content"], document_name=row["document_name"], distance=float(row["_distance"])) for row in rows]
        hits.sort(key=lambda hit: hit.distance)
        logger.info("Search returned %d results in %.2fs", len(hits), time.perf_counter() - t0)
        return hits


    def count(self, document_name: str | None = None, owner: str | None = None) -> int:
        """Row count, optionally restricted to a document and/or owner."""
        clauses = []
        if document_name is not None:
            clauses.append(f"document_name = {_quote(document_name)}")
        if owner is not None:
            clauses.append(f"owner = {_quote(owner)}")
        try:
            with self._pool.acquire() as table:
                return table.count_rows(" AND ".join(clauses) or None)
        except Exception as exc:
            raise StorageError(f"Failed to count rows: {exc}") from exc


    def __repr__(self) -> str:
        return f"KnowledgeVectorStore(pool={self._pool!r})"

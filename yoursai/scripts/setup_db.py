"""
YoursAI - Database Setup Script
================================
CLI entry point that prepares both stores:
    1. Load and validate settings (fail-fast on a bad ``.env``).
    2. Open LanceDB and create the knowledge table (optionally drop first).
    3. Create the MongoDB chat-history index.
    4. Print a summary with row counts and a timing breakdown.

Flags:
    --drop       Drop the knowledge table, then recreate it empty.
    --drop-only  Drop the knowledge table and exit.

Usage:
    python -m yoursai.scripts.setup_db
    python -m yoursai.scripts.setup_db --drop
    python -m yoursai.scripts.setup_db --drop-only
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="YoursAI — Initialise the knowledge table and chat-history indexes.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the LanceDB knowledge table before recreating it.")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Drop the LanceDB knowledge table and exit.")
    parser.add_argument("--skip-mongo", action="store_true", default=False, help="Do not touch MongoDB (LanceDB only).")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from yoursai.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from yoursai.src.core.errors import StorageError
    from yoursai.src.database.vector_store import KnowledgeVectorStore, LanceConnectionPool
    from yoursai.src.utils.logger import get_logger
    logger = get_logger(__name__)

    logger.info("Settings loaded in %.1fms", settings_ms)
    _print_header(settings)

    # ── 1. LanceDB (timed) ─────────────────────────────────────────────
    t_lancedb = time.perf_counter()
    pool = LanceConnectionPool(db_path=settings.LANCEDB_PATH, table_name=settings.LANCEDB_TABLE_NAME, dimension=settings.EMBEDDING_DIMENSION)
    store = KnowledgeVectorStore(pool)

    try:
        if args.drop or args.drop_only:
            logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)
            pool.drop_table()
            if args.drop_only:
                logger.info("--drop-only: Table dropped. Exiting.")
                _print_footer(None, None, time.perf_counter() - t_start, settings_ms, (time.perf_counter() - t_lancedb) * 1000, 0.0)
                return 0
        pool.ensure_ready()
        rows = store.count()
    except StorageError as exc:
        logger.error("LanceDB setup failed: %s", exc.message)
        return 1
    lancedb_ms = (time.perf_counter() - t_lancedb) * 1000
    logger.info("Knowledge table '%s' ready (%d rows) in %.1fms", settings.LANCEDB_TABLE_NAME, rows, lancedb_ms)

    # ── 2. MongoDB indexes (timed) ─────────────────────────────────────
    t_mongo = time.perf_counter()
    mongo_ok: bool | None = None
    if not args.skip_mongo:
        mongo_ok = asyncio.run(_ensure_mongo_indexes(settings))
    mongo_ms = (time.perf_counter() - t_mongo) * 1000

    # ── 3. Summary ─────────────────────────────────────────────────────
    _print_footer(rows, mongo_ok, time.perf_counter() - t_start, settings_ms, lancedb_ms, mongo_ms)
    return 0 if mongo_ok is not False else 1


async def _ensure_mongo_indexes(settings: object) -> bool:
    import motor.motor_asyncio

    from yoursai.src.core.errors import StorageError
    from yoursai.src.database.chat_history import MongoConversationStore
    from yoursai.src.utils.logger import get_logger
    logger = get_logger(__name__)

    client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value(), serverSelectionTimeoutMS=5000)  # type: ignore[attr-defined]
    try:
        store = MongoConversationStore.from_client(client, settings.MONGO_DB_NAME, settings.CHAT_HISTORY_COLLECTION)  # type: ignore[attr-defined]
        await store.ensure_indexes()
        logger.info("Chat-history index ready on '%s'.", settings.CHAT_HISTORY_COLLECTION)  # type: ignore[attr-defined]
        return True
    except StorageError as exc:
        logger.error("MongoDB setup failed: %s", exc.message)
        return False
    finally:
        client.close()


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object) -> None:
    mongo_uri_val = settings.MONGO_URI.get_secret_value()  # type: ignore[attr-defined]
    mongo_masked = mongo_uri_val.split("@")[-1] if "@" in mongo_uri_val else mongo_uri_val

    print()
    print("=" * 60)
    print("  YOURSAI — Database Setup")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                                  # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")                         # type: ignore[attr-defined]
    print(f"  Table        : {settings.LANCEDB_TABLE_NAME} (dim {settings.EMBEDDING_DIMENSION})")  # type: ignore[attr-defined]
    print(f"  MongoDB      : {mongo_masked} (db: {settings.MONGO_DB_NAME})")   # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_footer(rows: int | None, mongo_ok: bool | None, elapsed: float, settings_ms: float, lancedb_ms: float, mongo_ms: float) -> None:
    mongo_status = {True: "ready", False: "FAILED", None: "skipped"}[mongo_ok]

    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Knowledge rows       : {rows if rows is not None else 'dropped'}")
    print(f"  Chat-history index   : {mongo_status}")
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  LanceDB setup        : {lancedb_ms:>8.1f}ms")
    print(f"  MongoDB setup        : {mongo_ms:>8.1f}ms")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(main())

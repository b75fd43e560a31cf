"""
This module provides the SQLite-specific implementation of the `EventStore`
protocol. It is responsible for all direct database interactions: appending
events with an optimistic concurrency check, loading a stream, and managing
snapshots. Appends run inside an immediate transaction so a conflict leaves no
partial batch.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List
import asyncio
import json
import logging
import sqlite3
import zlib

import aiosqlite
from cryptography.fernet import Fernet, InvalidToken

from ..errors import ConcurrencyError, ConfigurationError, SequencingError
from ..models import Event, Snapshot, StoredStream
from ..protocols import EventStore


class SQLiteEventStore(EventStore):
    """
    Event store over a single aiosqlite connection.

    Event payloads are stored as JSON, encrypted with Fernet when an
    `encryption_key` is given. Snapshot state is stored as zlib-compressed JSON.
    """

    def __init__(self, conn: aiosqlite.Connection, encryption_key: str | bytes | None = None):
        self.conn = conn
        self.fernet = Fernet(encryption_key) if encryption_key else None
        self.write_lock = asyncio.Lock()

    async def create_schema(self):
        await self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                aggregate_id TEXT NOT NULL,
                version INTEGER NOT NULL,
                name TEXT NOT NULL,
                event_version INTEGER NOT NULL,
                payload BLOB NOT NULL,
                meta TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                UNIQUE (aggregate_id, version)
            )
            """
        )
        await self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS snapshots (
                aggregate_id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                state BLOB NOT NULL,
                timestamp TEXT NOT NULL
            )
            """
        )
        await self.conn.commit()

    def _encode_payload(self, payload: Dict) -> bytes:
        data = json.dumps(payload).encode()
        return self.fernet.encrypt(data) if self.fernet else data

    def _decode_payload(self, aggregate_id: str, version: int, blob: bytes) -> Dict:
        if self.fernet:
            try:
                blob = self.fernet.decrypt(blob)
            except InvalidToken as e:
                logging.error(f"Cannot decrypt event {version} of stream {aggregate_id}")
                raise ConfigurationError(
                    f"Cannot decrypt payload of event {version} in stream {aggregate_id}: wrong encryption key"
                ) from e
        return json.loads(blob)

    async def stream_version(self, aggregate_id: str) -> int:
        """Highest stored event version, else the snapshot version, else 0."""
        async with self.conn.execute(
            "SELECT MAX(version) FROM events WHERE aggregate_id = ?", (aggregate_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row and row[0] is not None:
            return row[0]
        snapshot = await self.load_snapshot(aggregate_id)
        return snapshot.version if snapshot else 0

    async def load(self, aggregate_id: str) -> StoredStream:
        """Loads the latest snapshot and the events stored after it."""
        snapshot = await self.load_snapshot(aggregate_id)
        start_version = snapshot.version if snapshot else 0
        events = []
        async with self.conn.execute(
            "SELECT version, name, event_version, payload, meta FROM events "
            "WHERE aggregate_id = ? AND version > ? ORDER BY version",
            (aggregate_id, start_version),
        ) as cursor:
            async for row in cursor:
                version, name, event_version, payload_blob, meta_json = row
                events.append(
                    Event(
                        name=name,
                        event_version=event_version,
                        payload=self._decode_payload(aggregate_id, version, payload_blob),
                        meta=json.loads(meta_json),
                        version=version,
                    )
                )
        return StoredStream(events=events, snapshot=snapshot)

    async def append(self, aggregate_id: str, events: List[Event], expected_version: int) -> int:
        """
        Persist `events` atomically, provided the stream is still at `expected_version`.
        Returns the new stream version.

        The transaction is opened with `BEGIN IMMEDIATE`, so the version check and
        the insert run under SQLite's write lock even when other connections
        write to the same database file.
        """
        async with self.write_lock:
            await self.conn.execute("BEGIN IMMEDIATE")
            try:
                current_version = await self.stream_version(aggregate_id)
                if current_version != expected_version:
                    raise ConcurrencyError(aggregate_id, expected_version, current_version)

                timestamp = datetime.now(timezone.utc).isoformat()
                params = []
                for i, event in enumerate(events):
                    version = current_version + i + 1
                    if event.version != version:
                        raise SequencingError(version, event.version)
                    params.append(
                        (
                            aggregate_id,
                            version,
                            event.name,
                            event.event_version,
                            self._encode_payload(event.payload),
                            json.dumps(event.meta),
                            timestamp,
                        )
                    )
                if params:
                    try:
                        await self.conn.executemany(
                            "INSERT INTO events (aggregate_id, version, name, event_version, payload, meta, timestamp) "
                            "VALUES (?, ?, ?, ?, ?, ?, ?)",
                            params,
                        )
                    except sqlite3.IntegrityError as e:
                        if "UNIQUE" not in str(e):
                            raise
                        # Another writer already holds one of these versions.
                        raise ConcurrencyError(
                            aggregate_id, expected_version, await self.stream_version(aggregate_id)
                        ) from e

                await self.conn.commit()
                return current_version + len(params)
            except Exception as e:
                await self.conn.rollback()
                if isinstance(e, ConcurrencyError):
                    logging.warning(str(e))
                else:
                    logging.error(f"Failed to append events to SQLite: {e}")
                raise

    async def save_snapshot(self, aggregate_id: str, snapshot: Snapshot):
        """Stores `snapshot` unless a newer one is already stored."""
        state = zlib.compress(json.dumps(snapshot.state).encode())
        async with self.write_lock:
            await self.conn.execute(
                """
                INSERT INTO snapshots (aggregate_id, version, state, timestamp) VALUES (?, ?, ?, ?)
                ON CONFLICT (aggregate_id) DO UPDATE SET
                    version = excluded.version,
                    state = excluded.state,
                    timestamp = excluded.timestamp
                WHERE excluded.version >= snapshots.version
                """,
                (aggregate_id, snapshot.version, state, datetime.now(timezone.utc).isoformat()),
            )
            await self.conn.commit()

    async def load_snapshot(self, aggregate_id: str) -> Snapshot | None:
        async with self.conn.execute(
            "SELECT version, state FROM snapshots WHERE aggregate_id = ?", (aggregate_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        version, state_blob = row
        try:
            state_blob = zlib.decompress(state_blob)
        except zlib.error:
            pass  # stored uncompressed
        return Snapshot(version=version, state=json.loads(state_blob))


@asynccontextmanager
async def sqlite_event_store(config: Dict) -> AsyncIterator[SQLiteEventStore]:
    """
    Opens a `SQLiteEventStore` for `config["db_path"]` (":memory:" for a private
    in-memory database) and closes the connection on exit.
    """
    db_path = config.get("db_path")
    if not db_path:
        raise ConfigurationError("`db_path` must be provided in the configuration.")

    conn = await aiosqlite.connect(db_path)
    try:
        if db_path != ":memory:":
            await conn.execute("PRAGMA journal_mode=WAL;")
            await conn.execute("PRAGMA synchronous = NORMAL;")
        await conn.execute("PRAGMA busy_timeout = 5000;")
        store = SQLiteEventStore(conn, encryption_key=config.get("encryption_key"))
        await store.create_schema()
        logging.info(f"SQLite event store opened at {db_path}")
        yield store
    finally:
        await conn.close()
        logging.info(f"SQLite event store closed at {db_path}")

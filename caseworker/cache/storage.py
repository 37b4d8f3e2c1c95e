"""
Named, versioned response stores persisted with SQLAlchemy.

The ORM work is synchronous; every public coroutine hands it to a worker
thread so the event loop never blocks on disk I/O. One RLock serializes
sessions, which also keeps the shared in-memory connection safe.
"""
import asyncio
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import CacheStorageError, NetworkError, PrecacheError
from ..network import FetchRequest, Network
from .core import CachedResponse
from .db import init_db, make_engine, make_session_factory
from .models import CacheStoreRecord, CachedResponseRecord

logger = logging.getLogger("caseworker.cache.storage")


class CacheStore:
    """
    Handle on one named store. Cheap to create; all state lives in the database.
    """

    def __init__(self, storage: "CacheStorage", name: str):
        self._storage = storage
        self.name = name

    def __repr__(self):
        return f"<CacheStore(name='{self.name}')>"

    async def match(self, key: str) -> Optional[CachedResponse]:
        return await asyncio.to_thread(self._storage._match_sync, self.name, key)

    async def put(self, key: str, cached: CachedResponse) -> None:
        await asyncio.to_thread(self._storage._put_many_sync, self.name, [(key, cached)])

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._storage._delete_entry_sync, self.name, key)

    async def keys(self) -> List[str]:
        return await asyncio.to_thread(self._storage._entry_keys_sync, self.name)

    async def size(self) -> int:
        """Total body bytes held by this store."""
        return await asyncio.to_thread(self._storage._size_sync, self.name)

    async def add_all(self, urls: Iterable[str], network: Network) -> int:
        """
        Fetch every URL and store the results, all-or-nothing.

        Nothing is written unless every fetch produced a 2xx response.

        Raises:
            PrecacheError: If any URL failed; lists every failed URL
        """
        requests = [FetchRequest.get(url) for url in urls]
        results = await asyncio.gather(
            *(network.fetch(request) for request in requests),
            return_exceptions=True,
        )

        failed: List[str] = []
        entries: List[Tuple[str, CachedResponse]] = []
        for request, result in zip(requests, results):
            if isinstance(result, NetworkError):
                failed.append(request.url)
            elif isinstance(result, BaseException):
                raise result
            elif not result.is_success:
                logger.warning(f"Precache got {result.status_code} for {request.url}")
                failed.append(request.url)
            else:
                entries.append((request.cache_key, CachedResponse.from_response(request.url, result)))

        if failed:
            raise PrecacheError(
                f"Could not precache {len(failed)} of {len(requests)} URLs into {self.name}",
                failed_urls=failed,
            )

        await asyncio.to_thread(self._storage._put_many_sync, self.name, entries)
        logger.info(f"Precached {len(entries)} responses into {self.name}")
        return len(entries)


class CacheStorage:
    """
    The set of named stores, opened lazily.

    Store names are returned in creation order.
    """

    def __init__(self, database_url: str = "sqlite://"):
        url = make_url(database_url)
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = make_engine(database_url)
        init_db(self._engine)
        self._session_factory = make_session_factory(self._engine)
        self._lock = threading.RLock()

    @contextmanager
    def _session(self):
        """Serialized session that commits on success and wraps DB errors."""
        with self._lock:
            session: Session = self._session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise CacheStorageError(f"Cache database error: {e}") from e
            finally:
                session.close()

    # =========================================================================
    # Stores
    # =========================================================================

    async def open(self, name: str) -> CacheStore:
        await asyncio.to_thread(self._open_sync, name)
        return CacheStore(self, name)

    async def has(self, name: str) -> bool:
        return name in await self.keys()

    async def keys(self) -> List[str]:
        return await asyncio.to_thread(self._store_names_sync)

    async def delete(self, name: str) -> bool:
        return await asyncio.to_thread(self._delete_store_sync, name)

    async def match(self, key: str) -> Optional[CachedResponse]:
        """Look a key up across every store, oldest store first."""
        return await asyncio.to_thread(self._match_any_sync, key)

    def close(self) -> None:
        self._engine.dispose()

    # =========================================================================
    # Synchronous internals (run in worker threads)
    # =========================================================================

    def _get_store(self, session: Session, name: str) -> Optional[CacheStoreRecord]:
        return session.query(CacheStoreRecord).filter(CacheStoreRecord.name == name).first()

    def _get_or_create_store(self, session: Session, name: str) -> CacheStoreRecord:
        record = self._get_store(session, name)
        if record is None:
            record = CacheStoreRecord(name=name)
            session.add(record)
            session.flush()
            logger.debug(f"Created cache store {name}")
        return record

    def _open_sync(self, name: str) -> None:
        with self._session() as session:
            self._get_or_create_store(session, name)

    def _store_names_sync(self) -> List[str]:
        with self._session() as session:
            rows = session.query(CacheStoreRecord.name).order_by(CacheStoreRecord.id).all()
            return [row.name for row in rows]

    def _delete_store_sync(self, name: str) -> bool:
        with self._session() as session:
            record = self._get_store(session, name)
            if record is None:
                return False
            session.delete(record)
            logger.info(f"Deleted cache store {name}")
            return True

    def _match_sync(self, name: str, key: str) -> Optional[CachedResponse]:
        with self._session() as session:
            row = (
                session.query(CachedResponseRecord)
                .join(CacheStoreRecord)
                .filter(CacheStoreRecord.name == name, CachedResponseRecord.key == key)
                .first()
            )
            return _to_cached(row) if row else None

    def _match_any_sync(self, key: str) -> Optional[CachedResponse]:
        with self._session() as session:
            row = (
                session.query(CachedResponseRecord)
                .filter(CachedResponseRecord.key == key)
                .order_by(CachedResponseRecord.store_id)
                .first()
            )
            return _to_cached(row) if row else None

    def _put_many_sync(self, name: str, entries: List[Tuple[str, CachedResponse]]) -> None:
        with self._session() as session:
            store = self._get_or_create_store(session, name)
            for key, cached in entries:
                row = (
                    session.query(CachedResponseRecord)
                    .filter(CachedResponseRecord.store_id == store.id, CachedResponseRecord.key == key)
                    .first()
                )
                if row is None:
                    row = CachedResponseRecord(store_id=store.id, key=key)
                    session.add(row)
                row.url = cached.url
                row.status = cached.status
                row.reason = cached.reason
                row.headers = json.dumps([list(h) for h in cached.headers])
                row.body = cached.body
                row.stored_at = cached.stored_at

    def _delete_entry_sync(self, name: str, key: str) -> bool:
        with self._session() as session:
            store = self._get_store(session, name)
            if store is None:
                return False
            deleted = (
                session.query(CachedResponseRecord)
                .filter(CachedResponseRecord.store_id == store.id, CachedResponseRecord.key == key)
                .delete()
            )
            return deleted > 0

    def _entry_keys_sync(self, name: str) -> List[str]:
        with self._session() as session:
            rows = (
                session.query(CachedResponseRecord.key)
                .join(CacheStoreRecord)
                .filter(CacheStoreRecord.name == name)
                .order_by(CachedResponseRecord.id)
                .all()
            )
            return [row.key for row in rows]

    def _size_sync(self, name: str) -> int:
        with self._session() as session:
            total = (
                session.query(func.coalesce(func.sum(func.length(CachedResponseRecord.body)), 0))
                .join(CacheStoreRecord)
                .filter(CacheStoreRecord.name == name)
                .scalar()
            )
            return int(total or 0)


def _to_cached(row: CachedResponseRecord) -> CachedResponse:
    return CachedResponse(
        url=row.url,
        status=row.status,
        body=row.body,
        headers=[tuple(h) for h in json.loads(row.headers)],
        reason=row.reason or "",
        stored_at=row.stored_at,
    )

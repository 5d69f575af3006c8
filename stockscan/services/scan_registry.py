from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from stockscan.app.config import settings
from stockscan.app.db.models.core_types import CommitState, EntryType, OrderKind
from stockscan.services.order_store import OrderStore
from stockscan.services.registered_cache import RegisteredQuantityCache
from stockscan.services.scan_session import FulfillmentSession

logger = structlog.get_logger(__name__)


class ScanSessionRegistry:
    """
    Contexte applicatif des sessions de scan.

    Détient un cache des quantités enregistrées par flux (partagé par toutes
    les sessions du flux, survit à leur abandon) et les sessions vivantes.

    Une session inactive depuis `ttl_seconds` est expirée ; au-delà de
    `max_sessions`, la moins récemment utilisée est évincée. Une session en
    cours de finalize n'est jamais évincée.
    """

    def __init__(
        self,
        store_factory: Callable[[OrderKind], OrderStore],
        *,
        ttl_seconds: float | None = None,
        max_sessions: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store_factory = store_factory
        self._stores: dict[OrderKind, OrderStore] = {}
        self.caches: dict[OrderKind, RegisteredQuantityCache] = {kind: RegisteredQuantityCache() for kind in OrderKind}
        self.ttl_seconds = ttl_seconds or settings.scan_session_ttl_seconds
        self.max_sessions = max_sessions or settings.max_scan_sessions
        self._clock = clock
        # ordre d'insertion = ordre d'usage (le plus ancien en tête)
        self._sessions: dict[str, FulfillmentSession] = {}
        self._last_seen: dict[str, float] = {}

    def store(self, kind: OrderKind) -> OrderStore:
        if kind not in self._stores:
            self._stores[kind] = self._store_factory(kind)
        return self._stores[kind]

    # ---------- Eviction ----------
    def _touch(self, session: FulfillmentSession) -> None:
        self._sessions.pop(session.id, None)
        self._sessions[session.id] = session
        self._last_seen[session.id] = self._clock()

    def _evict(self, session_id: str, reason: str) -> None:
        session = self._sessions.pop(session_id)
        self._last_seen.pop(session_id, None)
        session.reset_session()
        logger.info("scan_session_evicted", session_id=session_id, reason=reason)

    def _evictable(self, session: FulfillmentSession) -> bool:
        return session.commit_state is not CommitState.committing

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [
            sid
            for sid, session in self._sessions.items()
            if now - self._last_seen[sid] >= self.ttl_seconds and self._evictable(session)
        ]
        for sid in expired:
            self._evict(sid, "expired")
        return len(expired)

    def _enforce_capacity(self, room: int = 0) -> None:
        for sid in list(self._sessions):
            if len(self._sessions) + room <= self.max_sessions:
                return
            if self._evictable(self._sessions[sid]):
                self._evict(sid, "capacity")

    # ---------- Sessions ----------
    def open(
        self,
        kind: OrderKind,
        *,
        warehouse_id: int | None = None,
        order_bound: bool = True,
        entry_type: EntryType | None = None,
    ) -> FulfillmentSession:
        session = FulfillmentSession(
            self.store(kind),
            self.caches[kind],
            order_bound=order_bound,
            entry_type=entry_type,
        )
        session.set_warehouse(warehouse_id)

        self.evict_expired()
        self._enforce_capacity(room=1)
        self._touch(session)
        logger.info("scan_session_opened", session_id=session.id, kind=kind.value, order_bound=order_bound)
        return session

    def get(self, session_id: str) -> FulfillmentSession | None:
        self.evict_expired()
        session = self._sessions.get(session_id)
        if session is not None:
            self._touch(session)
        return session

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if session is None:
            return False
        session.reset_session()
        logger.info("scan_session_closed", session_id=session_id)
        return True

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

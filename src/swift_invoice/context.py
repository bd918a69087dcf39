"""Application state shared by routers and services."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import Settings, get_settings
from .events import AUTH_STATE, EventBus
from .interfaces.documents import DocumentStore, MemoryDocumentStore
from .interfaces.sql_store import SqlDocumentStore
from .services.auth import AuthService, AuthStateChange
from .services.cache import EntityCache

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    events: EventBus
    store: DocumentStore
    cache: EntityCache
    auth: AuthService


def build_store(settings: Settings) -> DocumentStore:
    if settings.document_backend == "memory":
        return MemoryDocumentStore(max_attempts=settings.transaction_max_attempts)
    return SqlDocumentStore(max_attempts=settings.transaction_max_attempts)


def build_context(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> AppContext:
    settings = settings or get_settings()
    events = EventBus()
    store = store or build_store(settings)
    cache = EntityCache(store, events, page_size=settings.page_size)
    auth = AuthService(events, settings)

    def _evict_on_sign_out(change: AuthStateChange) -> None:
        if change.user is None:
            logger.debug("Evicting cached documents of %s", change.uid)
            cache.evict_owner(change.uid)

    events.subscribe(AUTH_STATE, _evict_on_sign_out)
    return AppContext(settings=settings, events=events, store=store, cache=cache, auth=auth)

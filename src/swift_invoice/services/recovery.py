"""Reconciliation after a failed write through the cache."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..errors import StoreError
from ..events import STORE_ERROR

logger = logging.getLogger(__name__)


@asynccontextmanager
async def reconciling(ctx, collection: str, owner_uid: str) -> AsyncIterator[None]:
    """Re-raise store failures after re-syncing the owner's cached list.

    The optimistic in-memory change is left as is until the forced reload
    replaces it with what the store actually holds.
    """

    try:
        yield
    except StoreError as exc:
        logger.exception("Write to %s failed for %s", collection, owner_uid)
        ctx.events.publish(
            STORE_ERROR,
            {"collection": collection, "ownerUid": owner_uid, "error": exc.error_code},
        )
        try:
            await ctx.cache.load_once(collection, owner_uid, force=True)
        except StoreError:
            logger.warning("Forced reload of %s for %s failed as well", collection, owner_uid)
        raise

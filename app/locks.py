# Cross-process lock around signature collection, one Redis key per contract.
# Signers queue on the lock; only a wait longer than CONTRACT_LOCK_WAIT_MS is reported to the client.
# Without Redis the database transaction and row lock are the only guard.
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator

from redis.exceptions import RedisError

from .errors import DomainError
from .redis_client import get_redis

logger = logging.getLogger("vinhousing.locks")

# Upper bound on how long a crashed holder can block the contract
CONTRACT_LOCK_TTL_MS = int(os.getenv("CONTRACT_LOCK_TTL_MS", "5000"))
# How long a signer waits for the current holder before giving up
CONTRACT_LOCK_WAIT_MS = int(os.getenv("CONTRACT_LOCK_WAIT_MS", "3000"))


class ResourceBusyError(DomainError):
    """The lock could not be obtained within the wait budget; the client should retry shortly."""
    status_code = 429
    retry_after = 1  # seconds


@contextmanager
def redis_wait_lock(key: str, ttl_ms: int, wait_ms: int) -> Iterator[bool]:
    """
    Block up to wait_ms for `key`, then yield whether it is held.

    Yields True without locking when Redis is disabled or fails mid-acquire.
    """
    r = get_redis()
    if r is None:
        yield True
        return

    lock = r.lock(key, timeout=ttl_ms / 1000, blocking_timeout=wait_ms / 1000)
    try:
        acquired = bool(lock.acquire())
    except RedisError as exc:
        logger.warning("lock.acquire_failed", extra={"key": key, "reason": str(exc)})
        lock, acquired = None, True

    try:
        yield acquired
    finally:
        if lock is not None and acquired:
            try:
                lock.release()
            except RedisError as exc:
                # Expired while held, or Redis went away; the TTL cleans up either way
                logger.warning("lock.release_failed", extra={"key": key, "reason": str(exc)})


@contextmanager
def contract_lock(contract_id: int) -> Iterator[None]:
    """
    Serialize signature collection for one contract across API processes.

        with contract_lock(contract_id):
            ...  # insert signature, count signers, maybe transition
    """
    key = f"lock:contract:{contract_id}"
    with redis_wait_lock(key, ttl_ms=CONTRACT_LOCK_TTL_MS, wait_ms=CONTRACT_LOCK_WAIT_MS) as locked:
        if not locked:
            logger.warning("contract.lock_timeout", extra={"contract_id": contract_id})
            raise ResourceBusyError("Contract is being updated, retry shortly")
        yield

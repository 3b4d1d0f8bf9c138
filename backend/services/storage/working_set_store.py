"""In-memory working sets, one per browser session.

Nothing is persisted: a working set lives as long as the process does, and
is dropped once its session has been idle for ``WORKING_SET_TTL`` seconds.
"""
import logging
import threading
import time
from typing import Dict, Tuple

import core.config as core_config
from models.merge import WorkingSet

logger = logging.getLogger(__name__)

# session_id -> (last touched, working set)
_working_sets: Dict[str, Tuple[float, WorkingSet]] = {}
_working_sets_lock = threading.Lock()


def _clock() -> float:
    return time.monotonic()


def _evict_expired(now: float) -> None:
    # caller holds _working_sets_lock
    ttl = core_config.WORKING_SET_TTL
    expired = [sid for sid, (touched, _) in _working_sets.items() if now - touched > ttl]
    for session_id in expired:
        del _working_sets[session_id]
    if expired:
        logger.info(f"Dropped {len(expired)} idle working set(s)")


def get_working_set(session_id: str) -> WorkingSet:
    """Return the session's working set, an empty one if none was committed yet."""
    now = _clock()
    with _working_sets_lock:
        _evict_expired(now)
        entry = _working_sets.get(session_id)
        if entry is None:
            return WorkingSet()
        _working_sets[session_id] = (now, entry[1])
        return entry[1]


def commit_working_set(session_id: str, working_set: WorkingSet) -> None:
    now = _clock()
    with _working_sets_lock:
        _evict_expired(now)
        _working_sets[session_id] = (now, working_set)
    logger.debug(f"Committed {len(working_set)} file(s) for session {session_id}")


def clear_working_sets() -> None:
    """Drop every session's working set (used by tests)."""
    with _working_sets_lock:
        _working_sets.clear()

"""Thread-safe registry of program_id -> lock serializing waitlist position rewrites."""
import threading
import logging

logger = logging.getLogger(__name__)
_lock = threading.Lock()
_registry: dict[str, threading.RLock] = {}


def lock_for(program_id: str) -> threading.RLock:
    with _lock:
        lock = _registry.get(program_id)
        if lock is None:
            lock = threading.RLock()
            _registry[program_id] = lock
            logger.debug(f"Created waitlist position lock for program {program_id}")
        return lock

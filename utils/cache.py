import logging
import threading
import time
from typing import Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Content = Union[bytes, str]


class ResponseCache:
    """
    In-memory TTL cache for processed proxy responses.

    Entries expire lazily on lookup and are also swept by a background thread
    every ``cleanup_interval`` seconds. There is no size bound and keys are used
    verbatim: two spellings of the same URL are two entries.

    Call ``destroy()`` once at shutdown to stop the sweeper.
    """

    def __init__(self, default_ttl: int = 300, cleanup_interval: float = 60.0, start: bool = True):
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._entries: Dict[str, dict] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._sweeper = None
        if start:
            self.start()

    def start(self):
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="response-cache-sweeper", daemon=True)
        self._sweeper.start()

    def _sweep_loop(self):
        while not self._stop_event.wait(self.cleanup_interval):
            try:
                self.cleanup()
            except Exception as e:
                logger.error(f"❌ Cache cleanup failed: {e}")

    def set(self, key: str, content: Content, content_type: str, ttl: Optional[int] = None):
        ttl = ttl or self.default_ttl
        entry = {
            "content": content,
            "content_type": content_type,
            "created_at": time.monotonic(),
            "ttl": ttl,
        }
        with self._lock:
            self._entries[key] = entry

        logger.debug(f"Cached {key} ({len(content)} bytes, ttl={ttl}s)")

    def get(self, key: str) -> Optional[Tuple[Content, str]]:
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                logger.debug(f"Cache miss: {key}")
                return None

            age = time.monotonic() - entry["created_at"]
            if age > entry["ttl"]:
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key} (age={age:.1f}s, ttl={entry['ttl']}s)")
                return None

        logger.debug(f"Cache hit: {key} (age={age:.1f}s)")
        return entry["content"], entry["content_type"]

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()
        logger.info("🧹 Cache cleared")

    def cleanup(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        now = time.monotonic()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now - entry["created_at"] > entry["ttl"]]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        if expired:
            logger.debug(f"Cache cleanup: {len(expired)} expired, {remaining} remaining")
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            return {"entry_count": len(self._entries)}

    def destroy(self):
        self._stop_event.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=5)
        self._sweeper = None
        with self._lock:
            self._entries.clear()

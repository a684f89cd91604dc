"""Deferred cleanup of intake, output and archive files."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Expiring-entry store for temporary files, drained by a background sweep.

    ``schedule`` only records due times, so request handlers never block on
    disk. A daemon thread started with ``start`` calls ``sweep`` periodically;
    tests call ``sweep`` directly with a fake clock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, float] = {}
        self._sweep_hooks: List[Callable[[], object]] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def schedule(self, paths: Iterable[Path], delay_seconds: float) -> None:
        """Remove each path once ``delay_seconds`` have passed.

        A path already scheduled keeps whichever due time comes first.
        """
        due = self._clock() + max(0.0, float(delay_seconds))
        with self._lock:
            for path in paths:
                if path is None:
                    continue
                key = str(path)
                current = self._entries.get(key)
                if current is None or due < current:
                    self._entries[key] = due

    def pending(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._entries)

    def add_sweep_hook(self, hook: Callable[[], object]) -> None:
        """Run ``hook`` after every sweep (e.g. rate-limiter housekeeping)."""
        self._sweep_hooks.append(hook)

    def sweep(self, now: Optional[float] = None) -> List[Path]:
        """Delete every due path. Returns the paths actually removed."""
        now = self._clock() if now is None else now
        with self._lock:
            expired = sorted(path for path, due in self._entries.items() if due <= now)
            for path in expired:
                self._entries.pop(path, None)

        removed: List[Path] = []
        for path_str in expired:
            path = Path(path_str)
            try:
                if path.exists():
                    path.unlink()
                    removed.append(path)
                    logger.info(f"[cleanup] Removed: {path.name}")
            except OSError as e:
                logger.error(f"[cleanup] Could not remove {path.name}: {e}")

        for hook in self._sweep_hooks:
            try:
                hook()
            except Exception:
                logger.exception("[cleanup] Sweep hook failed")
        return removed

    def _run(self, interval_seconds: float) -> None:
        while not self._stop.wait(interval_seconds):
            self.sweep()

    def start(self, interval_seconds: float = 5.0) -> bool:
        """Start the background sweep once. Returns False if already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return False
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run,
                args=(interval_seconds,),
                daemon=True,
                name="heic-cleanup-daemon",
            )
            self._thread.start()
        logger.info("[cleanup] Sweep daemon started (interval=%ss)", interval_seconds)
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None

# =======================================================================================
# app/services/device_monitor.py - Device Liveness Tracking
# =======================================================================================
import threading
import time
from typing import Dict, List, Optional


class DeviceMonitor:
    """
    Last-seen timestamps per device id.

    ``sweep`` reports a device once and forgets it; it has to send another
    heartbeat before it can be reported offline again.
    """

    def __init__(self, offline_threshold_ms: int):
        self.offline_threshold_ms = offline_threshold_ms
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def heartbeat(self, device_id: str, now: Optional[float] = None) -> None:
        with self._lock:
            self._last_seen[device_id] = now if now is not None else time.time()

    def last_seen(self, device_id: str) -> Optional[float]:
        with self._lock:
            return self._last_seen.get(device_id)

    def tracked(self) -> List[str]:
        with self._lock:
            return list(self._last_seen)

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Remove and return devices silent for longer than the threshold."""
        now = now if now is not None else time.time()
        limit = self.offline_threshold_ms / 1000.0
        with self._lock:
            offline = [d for d, seen in self._last_seen.items() if now - seen > limit]
            for device_id in offline:
                self._last_seen.pop(device_id, None)
        return offline

from __future__ import annotations

import ipaddress
import threading
from typing import Optional

_MIN = 0
_MAX = 0xFFFFFFFF


class AddressCursor:
    """
    Walks IPv4 space one address at a time.

    The position lives only inside the cursor; next() hands out immutable
    IPv4Address copies. A step landing on 0.0.0.0 or 255.255.255.255 reports
    exhaustion (None) and leaves the position where it was.
    """

    def __init__(self, start: str):
        self._value = int(ipaddress.IPv4Address(start.strip()))
        self._lock = threading.Lock()

    def next(self, increment: bool = True) -> Optional[ipaddress.IPv4Address]:
        with self._lock:
            value = self._value + 1 if increment else self._value - 1
            if value <= _MIN or value >= _MAX:
                return None
            self._value = value
        return ipaddress.IPv4Address(value)

    @property
    def current(self) -> ipaddress.IPv4Address:
        with self._lock:
            return ipaddress.IPv4Address(self._value)

"""
One-shot hand-off of a refill from the dashboard to the fulfillment form.
"""

import threading
from typing import Optional

from rxledger.models import RefillHandoff


class HandoffSlot:
    """Holds at most one pending RefillHandoff.

    ``take`` returns the pending item once and clears the slot; a second
    ``take`` returns None. Offering replaces anything not yet taken.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Optional[RefillHandoff] = None

    def offer(self, handoff: RefillHandoff) -> None:
        with self._lock:
            self._pending = handoff

    def take(self) -> Optional[RefillHandoff]:
        with self._lock:
            handoff, self._pending = self._pending, None
        return handoff

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

"""Purchase-order number allocation for a single pipeline run."""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Callable, Optional

from config.settings import settings

logger = logging.getLogger(__name__)


class PONumberGenerator:
    """Allocate ``<prefix><YYMMDD><seq>`` order numbers.

    The date stamp is captured once at construction.  Numbers are unique
    within one generator lifetime only; the orchestrator builds a fresh
    generator at the start of every run and on reset.
    """

    def __init__(
        self,
        prefix: Optional[str] = None,
        *,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.prefix = prefix if prefix is not None else getattr(settings, "po_number_prefix", "PO")
        clock = today or date.today
        self.order_date: date = clock()
        self.date_stamp = self.order_date.strftime("%y%m%d")
        self._sequence = 0
        self._lock = threading.Lock()

    @property
    def sequence(self) -> int:
        return self._sequence

    def generate(self) -> str:
        with self._lock:
            self._sequence += 1
            number = f"{self.prefix}{self.date_stamp}{self._sequence:02d}"
        logger.debug("Allocated PO number %s", number)
        return number

    def reset(self) -> None:
        """Restart the sequence at zero; the date stamp is kept."""

        with self._lock:
            self._sequence = 0

"""Sequential order numbers.

Numbers look like ``ORD-000042``: a configurable prefix followed by a
zero-padded sequence. Orders store the sequence as an integer next to the
formatted number, and the next number is derived from the highest stored
sequence, so neither the prefix nor the width of the number affects which
order counts as the latest. Padding only sets a minimum width: after
``ORD-999999`` comes ``ORD-1000000``.

Within a process, allocation and persistence happen under one lock so two
callers never see the same "last number". Across processes the store's
uniqueness check catches collisions and the generator moves on to the next
free candidate.
"""

import os
import threading

import structlog
from protean.utils.globals import current_domain

from storefront.exceptions import OrderNumberConflict, OrderNumberExhausted

logger = structlog.get_logger(__name__)

DEFAULT_PREFIX = "ORD-"
SEQUENCE_WIDTH = 6
MAX_ATTEMPTS = 5

_issue_lock = threading.Lock()


class OrderNumberGenerator:
    def __init__(self, latest_sequence=None, prefix=None, max_attempts=MAX_ATTEMPTS, lock=None):
        """
        Args:
            latest_sequence: callable returning the highest issued sequence
                (an int) or None. Defaults to the order repository.
            prefix: defaults to ``ORDER_NUMBER_PREFIX`` or ``ORD-``.
        """
        if latest_sequence is None:
            from storefront.order.order import Order

            latest_sequence = current_domain.repository_for(Order).latest_sequence
        self.latest_sequence = latest_sequence
        self.prefix = prefix if prefix is not None else os.environ.get("ORDER_NUMBER_PREFIX", DEFAULT_PREFIX)
        self.max_attempts = max_attempts
        self._lock = lock or _issue_lock

    def format(self, sequence: int) -> str:
        return f"{self.prefix}{sequence:0{SEQUENCE_WIDTH}d}"

    def next_sequence(self, after: int | None = None) -> int:
        last = after if after is not None else self.latest_sequence()
        return (last or 0) + 1

    def next_candidate(self, after: int | None = None) -> str:
        """The number following sequence ``after``, or following the last issued one."""
        return self.format(self.next_sequence(after))

    def issue(self, persist) -> str:
        """Allocate a number and hand it to ``persist``.

        ``persist(number, sequence)`` must store the record and raise
        OrderNumberConflict when the number is already taken. On conflict the
        generator tries the next free candidate, up to ``max_attempts`` times,
        then raises OrderNumberExhausted.
        """
        with self._lock:
            sequence = self.next_sequence()
            for attempt in range(1, self.max_attempts + 1):
                candidate = self.format(sequence)
                try:
                    persist(candidate, sequence)
                except OrderNumberConflict:
                    logger.warning("Order number collision", order_number=candidate, attempt=attempt)
                    sequence = max(self.latest_sequence() or 0, sequence) + 1
                    continue

                logger.info("Order number issued", order_number=candidate, sequence=sequence)
                return candidate

        logger.error("Order numbers exhausted", attempts=self.max_attempts)
        raise OrderNumberExhausted(f"Could not allocate an order number after {self.max_attempts} attempts")

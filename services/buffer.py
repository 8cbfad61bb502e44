"""In-memory window of the most recent readings."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

from models.records import Reading

logger = logging.getLogger(__name__)


class TimeSeriesBuffer:
    """Holds the currently known window of readings, oldest first.

    The source re-delivers the whole window on every change, so the only
    mutation is :meth:`replace`. Contents are swapped as one immutable tuple.
    """

    def __init__(self, maxlen: int = 200) -> None:
        if maxlen <= 0:
            raise ValueError("Buffer size must be positive.")
        self.maxlen = maxlen
        self._rows: Tuple[Reading, ...] = ()

    def replace(self, rows: Iterable[Reading]) -> None:
        batch = list(rows)
        usable = [row for row in batch if row.timestamp is not None]
        if len(usable) != len(batch):
            logger.debug(
                "Dropping readings without a usable timestamp",
                extra={"row_count": len(batch) - len(usable)},
            )
        usable.sort(key=lambda row: row.timestamp)
        self._rows = tuple(usable[-self.maxlen:])

    def latest(self) -> Optional[Reading]:
        return self._rows[-1] if self._rows else None

    def all(self) -> Tuple[Reading, ...]:
        return self._rows

    def __len__(self) -> int:
        return len(self._rows)

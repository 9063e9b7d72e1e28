"""Ordered record set handed to dataset consumers."""

from __future__ import annotations

from typing import Callable, Iterable, Iterator, List, Optional

import pandas as pd

from .structures import CapturedPacket


class RecordSet:
    """Arrival-ordered collection of :class:`CapturedPacket` records.

    Consumers either iterate it (pull) or call :meth:`for_each`, which applies a
    callback to every record and then clears the set (push). Call :meth:`clear`
    between independent runs so records never accumulate across sessions.
    """

    def __init__(self, records: Optional[Iterable[CapturedPacket]] = None) -> None:
        self._records: List[CapturedPacket] = list(records or [])

    def append(self, record: CapturedPacket) -> None:
        self._records.append(record)

    def extend(self, records: Iterable[CapturedPacket]) -> None:
        self._records.extend(records)

    def clear(self) -> "RecordSet":
        self._records.clear()
        return self

    def for_each(self, action: Callable[[CapturedPacket], None]) -> "RecordSet":
        for record in self._records:
            action(record)
        return self.clear()

    @property
    def attack_count(self) -> int:
        return sum(1 for record in self._records if record.is_attack)

    def to_frame(self, timestamp_format: Optional[str] = None) -> pd.DataFrame:
        """Return one dataframe row per record, in arrival order."""

        rows = [record.as_row(timestamp_format) for record in self._records]
        if not rows:
            columns = list(CapturedPacket.__dataclass_fields__)
            if timestamp_format is not None:
                columns.append("timestamp")
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(rows)

    def __iter__(self) -> Iterator[CapturedPacket]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> CapturedPacket:
        return self._records[index]

    def __repr__(self) -> str:
        return f"RecordSet(records={len(self._records)}, attacks={self.attack_count})"


__all__ = ["RecordSet"]

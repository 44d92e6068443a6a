"""
Append-only epoch ledger.

Epoch 0 is seeded at construction with a par price (1.0 WAD). Every operator
transition appends exactly one record at `current_epoch + 1`. A price of 0
for an epoch means "not finalized yet".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Sequence

from ..core.fixed_point import WAD


@dataclass(frozen=True)
class EpochRecord:
    share_price: int
    timestamp: int

    def __post_init__(self) -> None:
        for name, v in (("share_price", self.share_price), ("timestamp", self.timestamp)):
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
        if self.share_price <= 0:
            raise ValueError(f"finalized share price must be positive: {self.share_price}")
        if self.timestamp < 0:
            raise ValueError(f"timestamp must be non-negative: {self.timestamp}")


class EpochLedger:
    def __init__(self, records: Sequence[EpochRecord]) -> None:
        if not records:
            raise ValueError("epoch ledger needs at least the seed record")
        self._records: List[EpochRecord] = list(records)

    @classmethod
    def seeded(cls, timestamp: int) -> "EpochLedger":
        return cls([EpochRecord(share_price=WAD, timestamp=timestamp)])

    @property
    def current_epoch(self) -> int:
        return len(self._records) - 1

    @property
    def latest(self) -> EpochRecord:
        return self._records[-1]

    def is_finalized(self, epoch: int) -> bool:
        return 0 <= epoch <= self.current_epoch

    def price_at(self, epoch: int) -> int:
        """Finalized share price of `epoch`, or 0 when it has not been finalized."""
        if not self.is_finalized(epoch):
            return 0
        return self._records[epoch].share_price

    def record_at(self, epoch: int) -> EpochRecord:
        if not self.is_finalized(epoch):
            raise KeyError(f"epoch {epoch} is not finalized")
        return self._records[epoch]

    def append(self, record: EpochRecord) -> int:
        """Finalize the next epoch. Timestamps never move backwards."""
        if record.timestamp < self.latest.timestamp:
            raise ValueError(
                f"epoch timestamp {record.timestamp} precedes {self.latest.timestamp}",
            )
        self._records.append(record)
        return self.current_epoch

    def max_price(self) -> int:
        return max(r.share_price for r in self._records)

    def __iter__(self) -> Iterator[EpochRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def copy(self) -> "EpochLedger":
        return EpochLedger(self._records)

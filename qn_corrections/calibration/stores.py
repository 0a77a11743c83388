"""Calibration-statistics stores.

The correction steps only need a keyed weighted accumulator: ``fill`` a value
for an (event-class bin, component) key and later ``read`` back its mean
(content), spread (width) and whether enough entries were seen for the bin to
be trusted. Stores here keep the raw sums so that partial stores produced by
parallel jobs can be merged exactly before the next pass.

Components are plain strings, e.g. ``"X2"``/``"Y2"`` for the Qn components of
harmonic 2, or the channel number for channelized stores.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..models.profile import DEFAULT_PROFILE, CorrectionsProfile
from .event_classes import EventClassBin

# accumulator slots
_ENTRIES, _SUM_W, _SUM_WX, _SUM_WX2 = range(4)


@dataclass(frozen=True)
class BinReading:
    """What a correction step reads back from a calibration bin."""

    content: float
    width: float
    entries: int
    validated: bool


_EMPTY = BinReading(content=0.0, width=0.0, entries=0, validated=False)


class ProfileStore:
    """Weighted mean/spread accumulator keyed by (event-class bin, component)."""

    kind = "profile"

    def __init__(
        self,
        name: str,
        *,
        min_entries: Optional[int] = None,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> None:
        self.name = str(name)
        self.profile = profile
        self.min_entries = int(profile.min_entries_to_validate if min_entries is None else min_entries)
        self._acc: Dict[Tuple[EventClassBin, str], np.ndarray] = {}

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    def fill(self, ec_bin: Optional[EventClassBin], component: str, value: float, weight: float = 1.0) -> None:
        """Accumulate ``value`` with ``weight``. Events outside the binning (None) are ignored."""
        if ec_bin is None:
            return
        key = (tuple(ec_bin), str(component))
        acc = self._acc.get(key)
        if acc is None:
            acc = np.zeros(4, dtype=float)
            self._acc[key] = acc
        v = float(value)
        w = float(weight)
        acc[_ENTRIES] += 1.0
        acc[_SUM_W] += w
        acc[_SUM_WX] += w * v
        acc[_SUM_WX2] += w * v * v

    def merge(self, other: ProfileStore) -> None:
        """Add the sums of ``other`` into this store (reduce step between passes)."""
        for key, acc in other._acc.items():
            mine = self._acc.get(key)
            if mine is None:
                self._acc[key] = acc.copy()
            else:
                mine += acc

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read(self, ec_bin: Optional[EventClassBin], component: str) -> BinReading:
        if ec_bin is None:
            return _EMPTY
        acc = self._acc.get((tuple(ec_bin), str(component)))
        if acc is None or acc[_SUM_W] == 0.0:
            return _EMPTY
        mean = acc[_SUM_WX] / acc[_SUM_W]
        var = acc[_SUM_WX2] / acc[_SUM_W] - mean * mean
        entries = int(acc[_ENTRIES])
        return BinReading(
            content=float(mean),
            width=float(math.sqrt(var)) if var > 0.0 else 0.0,
            entries=entries,
            validated=entries >= self.min_entries,
        )

    def bin_validated(self, ec_bin: Optional[EventClassBin], components: Sequence[str]) -> bool:
        """True when every listed component of the bin passes the entries threshold."""
        return all(self.read(ec_bin, c).validated for c in components)

    @property
    def is_empty(self) -> bool:
        return not self._acc

    def bins(self) -> List[EventClassBin]:
        return sorted({b for b, _ in self._acc})

    def components(self) -> List[str]:
        return sorted({c for _, c in self._acc})

    def items(self) -> Iterator[Tuple[EventClassBin, str, np.ndarray]]:
        """Raw accumulators ``(bin, component, [entries, sum_w, sum_wx, sum_wx2])``."""
        for (b, c), acc in sorted(self._acc.items()):
            yield b, c, acc

    def _load_raw(self, ec_bin: EventClassBin, component: str, acc: Sequence[float]) -> None:
        self._acc[(tuple(int(i) for i in ec_bin), str(component))] = np.asarray(acc, dtype=float).copy()

    def empty_copy(self) -> ProfileStore:
        return type(self)(self.name, min_entries=self.min_entries, profile=self.profile)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, keys={len(self._acc)})"


class ChannelizedProfileStore(ProfileStore):
    """Profile store whose components are detector channel numbers."""

    kind = "channelized"

    def fill_channel(self, ec_bin: Optional[EventClassBin], channel: int, value: float, weight: float = 1.0) -> None:
        self.fill(ec_bin, str(int(channel)), value, weight)

    def read_channel(self, ec_bin: Optional[EventClassBin], channel: int) -> BinReading:
        return self.read(ec_bin, str(int(channel)))

    def group_weight(
        self,
        ec_bin: Optional[EventClassBin],
        channel: int,
        channel_groups: Sequence[int],
        used_channels: Optional[Sequence[bool]] = None,
    ) -> float:
        """Mean of the channel averages of ``channel``'s group within ``ec_bin``.

        Channels with no entries in the bin, or masked out by ``used_channels``,
        do not take part. Returns 0.0 if no channel of the group has data.
        """
        groups = np.asarray(channel_groups, dtype=int)
        ch = int(channel)
        if not (0 <= ch < groups.size):
            raise ValueError(f"Channel {ch} outside channel groups table of size {groups.size}")
        members = np.flatnonzero(groups == groups[ch])
        if used_channels is not None:
            used = np.asarray(used_channels, dtype=bool)
            members = members[used[members]]
        averages = [r.content for r in (self.read_channel(ec_bin, m) for m in members) if r.entries > 0]
        if not averages:
            return 0.0
        return float(np.mean(averages))


class EventClassCounter:
    """Entry counter per event-class bin (e.g. not-validated corrections)."""

    kind = "counter"

    def __init__(self, name: str) -> None:
        self.name = str(name)
        self._counts: Dict[EventClassBin, float] = {}

    def fill(self, ec_bin: Optional[EventClassBin], weight: float = 1.0) -> None:
        if ec_bin is None:
            return
        key = tuple(ec_bin)
        self._counts[key] = self._counts.get(key, 0.0) + float(weight)

    def count(self, ec_bin: EventClassBin) -> float:
        return self._counts.get(tuple(ec_bin), 0.0)

    @property
    def total(self) -> float:
        return float(sum(self._counts.values()))

    @property
    def is_empty(self) -> bool:
        return not self._counts

    def bins(self) -> List[EventClassBin]:
        return sorted(self._counts)

    def merge(self, other: EventClassCounter) -> None:
        for b, c in other._counts.items():
            self._counts[b] = self._counts.get(b, 0.0) + c

    def empty_copy(self) -> EventClassCounter:
        return EventClassCounter(self.name)

    def __repr__(self) -> str:
        return f"EventClassCounter(name={self.name!r}, total={self.total:g})"

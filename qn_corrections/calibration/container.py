from __future__ import annotations

"""Named registry of calibration stores and its persisted form.

A :class:`CalibrationContainer` plays the role of the list a correction pass
registers its calibration stores into (``create_support_histograms``) and the
list the next pass attaches its inputs from (``attach_input``).

Persisted form
--------------
One long-format CSV, one row per accumulator::

    store, kind, bin, component, entries, sum_w, sum_wx, sum_wx2

``bin`` is the event-class bin written as ``"i,j,..."``. Sums are stored, not
means, so that containers written by parallel jobs can be merged exactly.
"""

from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import pandas as pd

from ..models.profile import DEFAULT_PROFILE, CorrectionsProfile
from .stores import ChannelizedProfileStore, EventClassCounter, ProfileStore

Store = Union[ProfileStore, EventClassCounter]

FRAME_COLUMNS = ("store", "kind", "bin", "component", "entries", "sum_w", "sum_wx", "sum_wx2")

_STORE_KINDS = {
    ProfileStore.kind: ProfileStore,
    ChannelizedProfileStore.kind: ChannelizedProfileStore,
}


def _bin_to_str(ec_bin) -> str:
    return ",".join(str(int(i)) for i in ec_bin)


def _bin_from_str(s: str):
    return tuple(int(x) for x in str(s).split(",") if x != "")


class CalibrationContainer:
    """Mapping ``name -> store`` with merge and CSV persistence."""

    def __init__(self, name: str = "calibration") -> None:
        self.name = str(name)
        self._stores: Dict[str, Store] = {}

    def register(self, store: Store) -> Store:
        """Add ``store``; a store previously registered under the same name is replaced."""
        self._stores[store.name] = store
        return store

    def get(self, name: str) -> Optional[Store]:
        return self._stores.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._stores

    def __iter__(self) -> Iterator[Store]:
        return iter(self._stores.values())

    def __len__(self) -> int:
        return len(self._stores)

    def names(self) -> List[str]:
        return sorted(self._stores)

    def merge(self, other: CalibrationContainer) -> None:
        """Fold ``other`` into this container store by store."""
        for name, store in other._stores.items():
            mine = self._stores.get(name)
            if mine is None:
                mine = self.register(store.empty_copy())
            elif type(mine) is not type(store):
                raise ValueError(
                    f"Cannot merge store {name!r}: {type(store).__name__} into {type(mine).__name__}"
                )
            mine.merge(store)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for name in self.names():
            store = self._stores[name]
            if isinstance(store, EventClassCounter):
                for b in store.bins():
                    c = store.count(b)
                    rows.append((name, store.kind, _bin_to_str(b), "", c, c, 0.0, 0.0))
            else:
                for b, comp, acc in store.items():
                    rows.append((name, store.kind, _bin_to_str(b), comp, *(float(x) for x in acc)))
        return pd.DataFrame(rows, columns=list(FRAME_COLUMNS))

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        *,
        name: str = "calibration",
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> CalibrationContainer:
        missing = [c for c in FRAME_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Calibration frame is missing required columns: {missing}")

        out = cls(name)
        for (store_name, kind), grp in df.groupby(["store", "kind"], sort=True):
            if kind == EventClassCounter.kind:
                counter = EventClassCounter(str(store_name))
                for row in grp.itertuples(index=False):
                    counter.fill(_bin_from_str(row.bin), float(row.entries))
                out.register(counter)
                continue
            store_cls = _STORE_KINDS.get(str(kind))
            if store_cls is None:
                raise ValueError(f"Unknown calibration store kind {kind!r} for store {store_name!r}")
            store = store_cls(str(store_name), profile=profile)
            for row in grp.itertuples(index=False):
                comp = "" if pd.isna(row.component) else str(row.component)
                store._load_raw(
                    _bin_from_str(row.bin),
                    comp,
                    (row.entries, row.sum_w, row.sum_wx, row.sum_wx2),
                )
            out.register(store)
        return out

    def save_csv(self, path: Union[str, Path]) -> Path:
        p = Path(path)
        self.to_frame().to_csv(p, index=False)
        return p

    @classmethod
    def load_csv(
        cls,
        path: Union[str, Path],
        *,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> CalibrationContainer:
        p = Path(path)
        # bins and components stay strings ("3,1", "12"); sums are parsed on load
        df = pd.read_csv(p, dtype=str)
        try:
            return cls.from_frame(df, name=p.stem, profile=profile)
        except ValueError as e:
            raise ValueError(f"Invalid calibration file {str(p)!r}: {e}") from e

    def __repr__(self) -> str:
        return f"CalibrationContainer(name={self.name!r}, stores={self.names()})"

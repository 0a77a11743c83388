from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional

import numpy as np


@dataclass
class DataVector:
    """
    One detector hit, track or channel signal for the current event.

    Notes
    - ``weight`` is the raw weight as delivered by the detector and is never modified.
    - ``equalized_weight`` starts equal to ``weight``; only gain equalization rewrites it.
    - ``channel_id`` is None for non-channelized detectors (tracks).
    """
    phi: float
    weight: float = 1.0
    channel_id: Optional[int] = None
    equalized_weight: float = field(init=False)

    def __post_init__(self) -> None:
        self.phi = float(self.phi)
        self.weight = float(self.weight)
        self.equalized_weight = self.weight

    def set_equalized_weight(self, weight: float) -> None:
        self.equalized_weight = float(weight)


class DataVectorBank:
    """Per-event list of :class:`DataVector` owned by a detector configuration."""

    def __init__(self) -> None:
        self._vectors: List[DataVector] = []

    def add_data_vector(self, phi: float, weight: float = 1.0, channel_id: Optional[int] = None) -> DataVector:
        dv = DataVector(phi=phi, weight=weight, channel_id=channel_id)
        self._vectors.append(dv)
        return dv

    def clear(self) -> None:
        self._vectors.clear()

    def __len__(self) -> int:
        return len(self._vectors)

    def __iter__(self) -> Iterator[DataVector]:
        return iter(self._vectors)

    def __getitem__(self, i: int) -> DataVector:
        return self._vectors[i]

    def phis(self) -> np.ndarray:
        return np.fromiter((dv.phi for dv in self._vectors), dtype=float, count=len(self._vectors))

    def weights(self) -> np.ndarray:
        return np.fromiter((dv.weight for dv in self._vectors), dtype=float, count=len(self._vectors))

    def equalized_weights(self) -> np.ndarray:
        return np.fromiter(
            (dv.equalized_weight for dv in self._vectors), dtype=float, count=len(self._vectors)
        )

    def channel_ids(self) -> np.ndarray:
        """Channel ids, -1 where a vector carries none."""
        return np.fromiter(
            (-1 if dv.channel_id is None else dv.channel_id for dv in self._vectors),
            dtype=int,
            count=len(self._vectors),
        )

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

#: Event-class bin: one bin index per event-class variable.
EventClassBin = Tuple[int, ...]


@dataclass(frozen=True)
class EventClassVariable:
    """One event-classification axis (centrality, vertex z, ...).

    Attributes
    ----------
    var_id:
        Index of the variable inside the per-event variables container.
    label:
        Human readable name.
    bin_edges:
        Ascending bin edges, ``n_bins + 1`` values. The upper edge is exclusive.
    """

    var_id: int
    label: str
    bin_edges: Tuple[float, ...]

    def __post_init__(self) -> None:
        edges = np.asarray(self.bin_edges, dtype=float)
        if edges.ndim != 1 or edges.size < 2:
            raise ValueError(f"{self.label}: need at least two bin edges, got {self.bin_edges!r}")
        if not np.all(np.diff(edges) > 0):
            raise ValueError(f"{self.label}: bin edges must be strictly ascending")
        object.__setattr__(self, "bin_edges", tuple(float(e) for e in edges))

    @classmethod
    def uniform(cls, var_id: int, label: str, n_bins: int, low: float, high: float) -> EventClassVariable:
        edges = np.linspace(float(low), float(high), int(n_bins) + 1)
        return cls(var_id=int(var_id), label=label, bin_edges=tuple(edges))

    @property
    def n_bins(self) -> int:
        return len(self.bin_edges) - 1

    def find_bin(self, value: float) -> Optional[int]:
        """Bin index of ``value`` or None when outside the binning (or NaN)."""
        v = float(value)
        if not np.isfinite(v) or v < self.bin_edges[0] or v >= self.bin_edges[-1]:
            return None
        return int(np.searchsorted(self.bin_edges, v, side="right")) - 1

    def bin_centers(self) -> np.ndarray:
        edges = np.asarray(self.bin_edges)
        return 0.5 * (edges[:-1] + edges[1:])


class EventClassVariablesSet:
    """Ordered set of event-class variables keying the calibration stores."""

    def __init__(self, variables: Sequence[EventClassVariable]) -> None:
        if not variables:
            raise ValueError("An event class variables set needs at least one variable")
        self.variables: Tuple[EventClassVariable, ...] = tuple(variables)

    def __len__(self) -> int:
        return len(self.variables)

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(v.n_bins for v in self.variables)

    def get_bin(self, variables: np.ndarray) -> Optional[EventClassBin]:
        """Event-class bin of the current event, None when any axis is out of range."""
        container = np.asarray(variables, dtype=float)
        out = []
        for var in self.variables:
            if var.var_id >= container.size:
                raise ValueError(
                    f"Variables container of size {container.size} has no entry for "
                    f"{var.label!r} (var_id={var.var_id})"
                )
            b = var.find_bin(container[var.var_id])
            if b is None:
                return None
            out.append(b)
        return tuple(out)

    def all_bins(self):
        """Iterate every event-class bin in C order."""
        for idx in np.ndindex(*self.shape):
            yield tuple(int(i) for i in idx)

    def labels(self) -> Tuple[str, ...]:
        return tuple(v.label for v in self.variables)

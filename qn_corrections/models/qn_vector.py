"""Qn vectors: harmonic-indexed 2D flow vectors.

Three variants share the same harmonic structure:

* :class:`QnVector` -- plain / corrected vector. Its components may only be set
  by the step that owns it; everyone else reads it.
* :class:`QnVectorBuild` -- accumulating vector used while summing particle
  contributions. It has no component setters at all: it grows only through
  ``add``/``add_angle`` and is scaled only by its normalization methods.

Harmonic numbers are 1-based external labels selected through a
:class:`HarmonicMask`. Components of inactive harmonics are never read.
"""

from __future__ import annotations

import math
from typing import Iterator, List, Optional, Sequence

import numpy as np

from .profile import DEFAULT_PROFILE, CorrectionsProfile

#: Returned by :meth:`HarmonicMask.next` once the active harmonics are exhausted.
NO_MORE_HARMONICS = -1


class HarmonicMask:
    """Fixed-width bitset of active harmonic numbers.

    Bit ``h`` is set when harmonic ``h`` participates. Bit 0 is never used.
    The mask only grows.
    """

    __slots__ = ("_bits", "_max_harmonic")

    def __init__(self, harmonics: Sequence[int] = (), *, max_harmonic: int) -> None:
        self._bits = 0
        self._max_harmonic = int(max_harmonic)
        for h in harmonics:
            self.activate(h)

    @property
    def bits(self) -> int:
        return self._bits

    @property
    def highest(self) -> int:
        """Highest active harmonic, 0 if none."""
        return self._bits.bit_length() - 1 if self._bits else 0

    def check(self, harmonic: int) -> int:
        h = int(harmonic)
        if h > self._max_harmonic:
            raise ValueError(
                f"You requested support for harmonic {h} but the highest harmonic "
                f"supported is currently {self._max_harmonic}"
            )
        if h < 1:
            raise ValueError(f"Harmonic numbers start at 1, got {h}")
        return h

    def activate(self, harmonic: int) -> bool:
        """Set the bit for ``harmonic``. Returns False if it was already active."""
        h = self.check(harmonic)
        if self.is_active(h):
            return False
        self._bits |= 1 << h
        return True

    def is_active(self, harmonic: int) -> bool:
        h = int(harmonic)
        if h < 1 or h > self._max_harmonic:
            return False
        return bool(self._bits & (1 << h))

    def first(self) -> int:
        return self.next(0)

    def next(self, harmonic: int) -> int:
        """Next active harmonic strictly above ``harmonic``, or ``NO_MORE_HARMONICS``."""
        remaining = self._bits >> (int(harmonic) + 1)
        if not remaining:
            return NO_MORE_HARMONICS
        # lowest set bit of the shifted mask
        return int(harmonic) + 1 + ((remaining & -remaining).bit_length() - 1)

    def __iter__(self) -> Iterator[int]:
        h = self.first()
        while h != NO_MORE_HARMONICS:
            yield h
            h = self.next(h)

    def __len__(self) -> int:
        return bin(self._bits).count("1")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HarmonicMask):
            return NotImplemented
        return self._bits == other._bits

    def __hash__(self) -> int:
        return hash(self._bits)

    def copy(self) -> HarmonicMask:
        m = HarmonicMask(max_harmonic=self._max_harmonic)
        m._bits = self._bits
        return m

    def __repr__(self) -> str:
        return f"HarmonicMask({list(self)})"


def _harmonics_from_map(n_harmonics: int, harmonic_map: Optional[Sequence[int]]) -> List[int]:
    n = int(n_harmonics)
    if n < 1:
        raise ValueError(f"n_harmonics must be >= 1, got {n_harmonics}")
    if harmonic_map is None:
        return list(range(1, n + 1))
    hmap = [int(h) for h in harmonic_map]
    if len(hmap) < n:
        raise ValueError(f"harmonic_map has {len(hmap)} entries, need {n}")
    hmap = hmap[:n]
    if any(b <= a for a, b in zip(hmap, hmap[1:])):
        raise ValueError(f"harmonic_map must be strictly ascending, got {hmap}")
    return hmap


class _QnVectorBase:
    """Read-side of every Qn vector variant."""

    def __init__(
        self,
        name: str = "",
        n_harmonics: int = 1,
        harmonic_map: Optional[Sequence[int]] = None,
        *,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> None:
        self.name = str(name)
        self.profile = profile
        harmonics = _harmonics_from_map(n_harmonics, harmonic_map)
        self._mask = HarmonicMask(harmonics, max_harmonic=profile.max_harmonic)
        self._qx = np.zeros(profile.max_harmonic + 1, dtype=float)
        self._qy = np.zeros(profile.max_harmonic + 1, dtype=float)
        self._good = False

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def harmonic_mask(self) -> HarmonicMask:
        return self._mask.copy()

    @property
    def highest_harmonic(self) -> int:
        return self._mask.highest

    @property
    def n_harmonics(self) -> int:
        return len(self._mask)

    def harmonic_map(self) -> List[int]:
        return list(self._mask)

    def first_harmonic(self) -> int:
        return self._mask.first()

    def next_harmonic(self, harmonic: int) -> int:
        return self._mask.next(harmonic)

    def harmonics(self) -> Iterator[int]:
        """Ascending active harmonic numbers."""
        return iter(self._mask)

    def is_active(self, harmonic: int) -> bool:
        return self._mask.is_active(harmonic)

    def same_structure(self, other: _QnVectorBase) -> bool:
        return self.highest_harmonic == other.highest_harmonic and self._mask == other._mask

    def activate_harmonic(self, harmonic: int) -> None:
        """Activate ``harmonic``; its components start at zero. No-op if already active."""
        if self._mask.activate(harmonic):
            self._qx[harmonic] = 0.0
            self._qy[harmonic] = 0.0

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _require_active(self, harmonic: int) -> int:
        h = int(harmonic)
        if not self._mask.is_active(h):
            raise ValueError(f"Harmonic {h} is not active in Qn vector {self.name!r}")
        return h

    def qx(self, harmonic: int) -> float:
        return float(self._qx[self._require_active(harmonic)])

    def qy(self, harmonic: int) -> float:
        return float(self._qy[self._require_active(harmonic)])

    def length(self, harmonic: int) -> float:
        h = self._require_active(harmonic)
        return float(math.hypot(self._qx[h], self._qy[h]))

    def qx_norm(self, harmonic: int) -> float:
        """Qx of the unit vector; 0.0 when the length is insignificant."""
        norm = self.length(harmonic)
        if norm < self.profile.min_significant_value:
            return 0.0
        return self.qx(harmonic) / norm

    def qy_norm(self, harmonic: int) -> float:
        norm = self.length(harmonic)
        if norm < self.profile.min_significant_value:
            return 0.0
        return self.qy(harmonic) / norm

    @property
    def good_quality(self) -> bool:
        return self._good

    def event_plane(self, harmonic: int) -> float:
        """Event plane angle ``atan2(Qy, Qx)/h``; 0.0 when both components are insignificant."""
        x = self.qx(harmonic)
        y = self.qy(harmonic)
        eps = self.profile.min_significant_value
        if abs(x) < eps and abs(y) < eps:
            return 0.0
        return math.atan2(y, x) / float(harmonic)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def _copy_values_from(self, other: _QnVectorBase) -> None:
        if not self.same_structure(other):
            raise ValueError(
                f"Cannot set Qn vector {self.name!r} from {other.name!r}: "
                f"harmonic structures do not match ({self._mask!r} vs {other._mask!r})"
            )
        self._qx[:] = other._qx
        self._qy[:] = other._qy
        self._good = other._good

    def normalize(self) -> None:
        """Scale every active harmonic to unit length.

        Harmonics whose length is below the significance threshold are left untouched.
        """
        eps = self.profile.min_significant_value
        for h in self._mask:
            norm = math.hypot(self._qx[h], self._qy[h])
            if norm < eps:
                continue
            self._qx[h] /= norm
            self._qy[h] /= norm

    def reset(self) -> None:
        """Zero the components and mark bad quality. Structure is kept."""
        self._qx[:] = 0.0
        self._qy[:] = 0.0
        self._good = False

    def components(self) -> np.ndarray:
        """Active components as an array of shape ``(n_harmonics, 2)``."""
        idx = np.asarray(self.harmonic_map(), dtype=int)
        return np.column_stack([self._qx[idx], self._qy[idx]])

    def _describe_lines(self) -> List[str]:
        return [f"\t\tharmonic {h}\tQX: {self._qx[h]:g}\tQY: {self._qy[h]:g}" for h in self._mask]


class QnVector(_QnVectorBase):
    """Plain or corrected Qn vector.

    Components are set by the correction step (or detector configuration) owning
    the vector; downstream code reads it and checks :attr:`good_quality` first.
    """

    def set_qx(self, harmonic: int, value: float) -> None:
        self._qx[self._require_active(harmonic)] = float(value)

    def set_qy(self, harmonic: int, value: float) -> None:
        self._qy[self._require_active(harmonic)] = float(value)

    def set_good(self, good: bool) -> None:
        self._good = bool(good)

    def set(self, other: _QnVectorBase, change_name: bool = False) -> None:
        """Copy components and quality from ``other``.

        Raises ``ValueError`` when the harmonic structures differ.
        """
        self._copy_values_from(other)
        if change_name:
            self.name = other.name

    def copy(self, name: Optional[str] = None) -> QnVector:
        out = QnVector(
            self.name if name is None else name,
            self.n_harmonics,
            self.harmonic_map(),
            profile=self.profile,
        )
        out.set(self)
        return out

    def describe(self) -> str:
        head = f"OBJ: Qn vector step: {self.name}\tquality: {'good' if self._good else 'bad'}"
        return "\n".join([head] + self._describe_lines())

    def __repr__(self) -> str:
        return f"QnVector(name={self.name!r}, harmonics={self.harmonic_map()}, good={self._good})"


class QnVectorBuild(_QnVectorBase):
    """Accumulating Qn vector.

    Holds the running ``sum_of_weights`` and ``entry_count`` next to the
    components. There are no component setters on this variant.
    """

    def __init__(
        self,
        name: str = "",
        n_harmonics: int = 1,
        harmonic_map: Optional[Sequence[int]] = None,
        *,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> None:
        super().__init__(name, n_harmonics, harmonic_map, profile=profile)
        self.sum_of_weights = 0.0
        self.entry_count = 0

    def set_good(self, good: bool) -> None:
        self._good = bool(good)

    def set(self, other: QnVectorBuild) -> None:
        """Copy components, quality and sums from another build vector. The name is kept."""
        self._copy_values_from(other)
        self.sum_of_weights = other.sum_of_weights
        self.entry_count = other.entry_count

    def add(self, other: QnVectorBuild) -> None:
        """Accumulate another build vector over this vector's active harmonics."""
        if not self.same_structure(other):
            raise ValueError(
                f"Cannot add Qn vector {other.name!r} to {self.name!r}: "
                f"harmonic structures do not match ({self._mask!r} vs {other._mask!r})"
            )
        for h in self._mask:
            self._qx[h] += other._qx[h]
            self._qy[h] += other._qy[h]
        self.sum_of_weights += other.sum_of_weights
        self.entry_count += other.entry_count

    def add_angle(self, phi: float, weight: float = 1.0) -> None:
        """Accumulate one particle/channel contribution at azimuth ``phi``."""
        w = float(weight)
        for h in self._mask:
            self._qx[h] += w * math.cos(h * phi)
            self._qy[h] += w * math.sin(h * phi)
        self.sum_of_weights += w
        self.entry_count += 1

    def add_angles(self, phis: np.ndarray, weights: Optional[np.ndarray] = None) -> None:
        """Vectorized :meth:`add_angle` over arrays of azimuths and weights."""
        phi = np.asarray(phis, dtype=float)
        if phi.ndim != 1:
            raise ValueError(f"phis must be 1D, got shape {phi.shape}")
        w = np.ones_like(phi) if weights is None else np.asarray(weights, dtype=float)
        if w.shape != phi.shape:
            raise ValueError(f"weights shape {w.shape} does not match phis shape {phi.shape}")
        if phi.size == 0:
            return
        for h in self._mask:
            self._qx[h] += float(np.sum(w * np.cos(h * phi)))
            self._qy[h] += float(np.sum(w * np.sin(h * phi)))
        self.sum_of_weights += float(np.sum(w))
        self.entry_count += int(phi.size)

    def normalize_q_over_m(self) -> None:
        """Divide components by ``sum_of_weights``.

        Does nothing when the sum of weights is below the significance threshold.
        Not idempotent: call it once per accumulated event.
        """
        if self.sum_of_weights < self.profile.min_significant_value:
            return
        for h in self._mask:
            self._qx[h] /= self.sum_of_weights
            self._qy[h] /= self.sum_of_weights

    def normalize_q_over_square_root_of_m(self) -> None:
        """Divide components by ``sqrt(sum_of_weights)``; same guard as :meth:`normalize_q_over_m`."""
        if self.sum_of_weights < self.profile.min_significant_value:
            return
        root = math.sqrt(self.sum_of_weights)
        for h in self._mask:
            self._qx[h] /= root
            self._qy[h] /= root

    def reset(self) -> None:
        super().reset()
        self.sum_of_weights = 0.0
        self.entry_count = 0

    def describe(self) -> str:
        head = (
            f"OBJ: building Qn vector\tN: {self.entry_count}\tSum w: {self.sum_of_weights:g}\t"
            f"quality: {'good' if self._good else 'bad'}"
        )
        return "\n".join([head] + self._describe_lines())

    def __repr__(self) -> str:
        return (
            f"QnVectorBuild(name={self.name!r}, harmonics={self.harmonic_map()}, "
            f"N={self.entry_count}, sum_w={self.sum_of_weights:g})"
        )

"""Corrections profile -- process-wide constants for the correction framework.

A CorrectionsProfile groups the numeric thresholds that every Qn vector,
calibration store and correction step relies on into one frozen dataclass.
It is created once at startup and passed explicitly (``profile=...``) to the
components that need it. It can be:

- Overridden field-by-field via ``dataclasses.replace()``
- Serialized to/from a dict for JSON provenance
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

#: Width of the harmonic bitset; harmonic numbers are 1-based labels.
HARMONIC_BITSET_WIDTH = 15


@dataclass(frozen=True)
class CorrectionsProfile:
    """Frozen configuration shared by the correction pipeline.

    Fields
    ------
    min_significant_value : float
        Values below this magnitude are treated as statistically meaningless
        (sum of weights, channel averages, Qn components near the origin).
    max_harmonic : int
        Highest external harmonic number that may be activated.
    min_entries_to_validate : int
        Minimum number of entries a calibration bin needs before its content
        is trusted by a correction step.
    """

    min_significant_value: float = 1e-6
    max_harmonic: int = HARMONIC_BITSET_WIDTH
    min_entries_to_validate: int = 2

    def __post_init__(self) -> None:
        if not (1 <= int(self.max_harmonic) <= HARMONIC_BITSET_WIDTH):
            raise ValueError(
                f"max_harmonic must be in [1, {HARMONIC_BITSET_WIDTH}], got {self.max_harmonic}"
            )
        if not self.min_significant_value > 0.0:
            raise ValueError(f"min_significant_value must be > 0, got {self.min_significant_value}")
        if int(self.min_entries_to_validate) < 1:
            raise ValueError(f"min_entries_to_validate must be >= 1, got {self.min_entries_to_validate}")

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> CorrectionsProfile:
        """Reconstruct from a dict (e.g. loaded from JSON)."""
        return cls(**dict(d))


DEFAULT_PROFILE = CorrectionsProfile()

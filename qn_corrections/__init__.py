"""Qn Corrections -- Python tooling for event-by-event Qn flow-vector corrections.

Designed for heavy-ion flow analyses where detector acceptance is not uniform
in azimuth.

This package provides tools for:
- Building per-detector raw Qn vectors from hit/track azimuthal angles and weights
- Equalizing the gain of detector channels before the Qn vector is built
- Recentering and width-equalizing Qn vectors per event class
- Running each correction step through calibration / apply-collect / apply passes
- Persisting and merging calibration statistics between passes

Key principles:
- Insufficient calibration never raises: the affected output is zeroed or left untouched
- Bad quality is a flag that travels down the correction chain
- Wiring errors (mismatched harmonic structures, out-of-range harmonics) raise immediately

Main subpackages:
- models: Qn vectors, data vectors, CorrectionsProfile
- calibration: Event-class binning, calibration stores and their container
- corrections: Correction-step state machine, gain equalization, recentering
- detector: Detector configurations owning the correction chain
- qa: Tabular and matplotlib views of calibration stores
"""

__all__ = []

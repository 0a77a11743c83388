from __future__ import annotations

"""Detector configurations: one ordered correction chain per detector.

A configuration owns

* the plain Qn vector built from the event's data vectors,
* a "current" Qn vector reference that each applied correction step replaces
  with its own output,
* the ordered list of Qn-vector correction steps (and, for channelized
  detectors, the input-data correction steps).

Event sequence driven by the caller::

    config.add_data_vector(...)            # for every hit / channel
    config.process_event(variables)        # input corrections, build, Qn chain
    ... read config.current_qn_vector ...
    config.clear_configuration()           # end of event

The chain is strictly sequential: step i+1 reads the current vector only after
step i has replaced it. Configurations share no mutable state and may be
processed independently.
"""

import enum
import logging
from typing import List, Optional, Sequence, Union

import numpy as np

from ..calibration.container import CalibrationContainer
from ..calibration.event_classes import EventClassVariablesSet
from ..corrections.correction_step import CorrectionOnInputData, CorrectionOnQnVector, CorrectionStep
from ..models.data_vector import DataVectorBank
from ..models.profile import DEFAULT_PROFILE, CorrectionsProfile
from ..models.qn_vector import QnVector, QnVectorBuild

logger = logging.getLogger(__name__)


class QnNormalization(str, enum.Enum):
    """How the plain Qn vector is normalized after accumulation."""

    NONE = "none"
    Q_OVER_SQRT_M = "q_over_sqrt_m"
    Q_OVER_M = "q_over_m"
    UNIT = "unit"


class _CorrectionsSet:
    """Correction steps kept in ascending key order (stable for equal keys)."""

    def __init__(self) -> None:
        self._steps: List[CorrectionStep] = []

    def add(self, step: CorrectionStep) -> None:
        if any(s is step for s in self._steps):
            raise ValueError(f"Correction step {step.name!r} already added")
        self._steps.append(step)
        self._steps.sort(key=lambda s: s.key)

    def previous(self, step: CorrectionStep) -> Optional[CorrectionStep]:
        for i, s in enumerate(self._steps):
            if s is step:
                return self._steps[i - 1] if i > 0 else None
        raise ValueError(f"Correction step {step.name!r} is not part of this configuration")

    def __iter__(self):
        return iter(list(self._steps))

    def __len__(self) -> int:
        return len(self._steps)


class DetectorConfiguration:
    """Correction chain for one detector (track-like: no channels)."""

    plain_qn_vector_name = "plain"

    def __init__(
        self,
        name: str,
        event_classes: EventClassVariablesSet,
        n_harmonics: int,
        harmonic_map: Optional[Sequence[int]] = None,
        *,
        normalization: Union[QnNormalization, str] = QnNormalization.NONE,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> None:
        self.name = str(name)
        self.event_classes = event_classes
        self.profile = profile
        self.normalization = QnNormalization(normalization)
        self._plain_qn_vector = QnVector(self.plain_qn_vector_name, n_harmonics, harmonic_map, profile=profile)
        self._build_qn_vector = QnVectorBuild("build", n_harmonics, harmonic_map, profile=profile)
        self._current_qn_vector: QnVector = self._plain_qn_vector
        self._qn_vector_corrections = _CorrectionsSet()
        self._data_vector_bank = DataVectorBank()

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def n_harmonics(self) -> int:
        return self._plain_qn_vector.n_harmonics

    def harmonic_map(self) -> List[int]:
        return self._plain_qn_vector.harmonic_map()

    @property
    def plain_qn_vector(self) -> QnVector:
        return self._plain_qn_vector

    @property
    def current_qn_vector(self) -> QnVector:
        return self._current_qn_vector

    @property
    def data_vector_bank(self) -> DataVectorBank:
        return self._data_vector_bank

    @property
    def qn_vector_corrections(self) -> List[CorrectionOnQnVector]:
        return list(self._qn_vector_corrections)

    def update_current_qn_vector(self, qn: QnVector) -> None:
        self._current_qn_vector = qn

    def add_correction_on_qn_vector(self, step: CorrectionOnQnVector) -> None:
        step.set_configuration_owner(self)
        self._qn_vector_corrections.add(step)

    def add_correction_on_input_data(self, step: CorrectionOnInputData) -> None:
        raise TypeError(
            f"Detector configuration {self.name!r} is not channelized; "
            f"input data corrections need a ChannelizedDetectorConfiguration"
        )

    def previous_corrected_qn_vector(self, step: CorrectionOnQnVector) -> QnVector:
        """Output of the step preceding ``step``, or the plain vector for the first step."""
        prev = self._qn_vector_corrections.previous(step)
        if prev is None:
            return self._plain_qn_vector
        return prev.corrected_qn_vector

    def _all_steps(self) -> List[CorrectionStep]:
        return list(self._qn_vector_corrections)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_support_data_structures(self) -> None:
        # in chain order so every step finds its predecessor's output allocated
        for step in self._all_steps():
            step.create_support_data_structures()

    def create_support_histograms(self, container: CalibrationContainer) -> bool:
        return all([step.create_support_histograms(container) for step in self._all_steps()])

    def attach_input(self, container: CalibrationContainer) -> bool:
        """Bind previous-pass calibration to every step. True only if all steps attached."""
        return all([step.attach_input(container) for step in self._all_steps()])

    def create_qa_histograms(self, container: CalibrationContainer) -> bool:
        return all([step.create_qa_histograms(container) for step in self._all_steps()])

    def create_nve_qa_histograms(self, container: CalibrationContainer) -> bool:
        return all([step.create_nve_qa_histograms(container) for step in self._all_steps()])

    # ------------------------------------------------------------------
    # Per-event
    # ------------------------------------------------------------------

    def add_data_vector(self, phi: float, weight: float = 1.0) -> None:
        self._data_vector_bank.add_data_vector(phi, weight)

    def _contribution_weights(self) -> np.ndarray:
        return self._data_vector_bank.weights()

    def build_qn_vector(self) -> QnVector:
        """Build the plain Qn vector from the data vector bank and make it current."""
        build = self._build_qn_vector
        build.reset()
        build.add_angles(self._data_vector_bank.phis(), self._contribution_weights())
        build.set_good(build.entry_count > 0 and build.sum_of_weights >= self.profile.min_significant_value)

        if self.normalization == QnNormalization.Q_OVER_M:
            build.normalize_q_over_m()
        elif self.normalization == QnNormalization.Q_OVER_SQRT_M:
            build.normalize_q_over_square_root_of_m()
        elif self.normalization == QnNormalization.UNIT:
            build.normalize()

        self._plain_qn_vector.set(build)
        self._current_qn_vector = self._plain_qn_vector
        return self._plain_qn_vector

    def process_input_data_corrections(self, variables: np.ndarray) -> bool:
        """Hook for channelized detectors; track-like detectors have none.

        Returns False when an input-data step was not applied, in which case the
        Qn vector chain must not run for this event.
        """
        return True

    def process_qn_vector_corrections(self, variables: np.ndarray) -> bool:
        """Run the Qn vector chain on the current vector: collect then apply, step by step.

        Each step collects only after its predecessor has produced this event's
        output. Stops at the first step that is not applied and returns False.
        """
        for step in self._qn_vector_corrections:
            step.process_data_collection(variables)
            if not step.process_corrections(variables):
                # later steps have no corrected input to work on yet
                return False
        return True

    def process_event(self, variables: np.ndarray) -> QnVector:
        """Full event: input corrections, Qn vector build, then the Qn vector chain.

        The plain vector is always built. The chain is skipped entirely while an
        input-data correction is not yet applied. Returns the final current Qn vector.
        """
        input_applied = self.process_input_data_corrections(variables)
        self.build_qn_vector()
        if input_applied:
            self.process_qn_vector_corrections(variables)
        return self._current_qn_vector

    def clear_configuration(self) -> None:
        """End of event: reset step outputs and the plain vector, empty the bank."""
        for step in self._all_steps():
            step.clear_correction_step()
        self._plain_qn_vector.reset()
        self._build_qn_vector.reset()
        self._current_qn_vector = self._plain_qn_vector
        self._data_vector_bank.clear()

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def report_usage(self, collecting: List[str], applying: List[str]) -> bool:
        results = [step.report_usage(collecting, applying) for step in self._all_steps()]
        return any(results)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, harmonics={self.harmonic_map()}, "
            f"steps={[s.name for s in self._all_steps()]})"
        )


class ChannelizedDetectorConfiguration(DetectorConfiguration):
    """Detector made of channels (e.g. scintillator segments).

    Parameters (beyond :class:`DetectorConfiguration`)
    --------------------------------------------------
    n_channels:
        Number of channels.
    used_channels:
        Optional boolean mask ``(n_channels,)``; data from unused channels is dropped.
    channel_groups:
        Optional group id per channel ``(n_channels,)``, used for group weights.
    hard_coded_group_weights:
        Optional fixed per-channel weights ``(n_channels,)``.
    """

    def __init__(
        self,
        name: str,
        event_classes: EventClassVariablesSet,
        n_harmonics: int,
        harmonic_map: Optional[Sequence[int]] = None,
        *,
        n_channels: int,
        used_channels: Optional[Sequence[bool]] = None,
        channel_groups: Optional[Sequence[int]] = None,
        hard_coded_group_weights: Optional[Sequence[float]] = None,
        normalization: Union[QnNormalization, str] = QnNormalization.NONE,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> None:
        super().__init__(
            name, event_classes, n_harmonics, harmonic_map, normalization=normalization, profile=profile
        )
        self.n_channels = int(n_channels)
        if self.n_channels <= 0:
            raise ValueError(f"n_channels must be > 0, got {n_channels}")
        self.used_channels = self._per_channel(used_channels, "used_channels", bool, True)
        self.channel_groups = (
            None if channel_groups is None else self._per_channel(channel_groups, "channel_groups", int, 0)
        )
        self.hard_coded_group_weights = (
            None
            if hard_coded_group_weights is None
            else self._per_channel(hard_coded_group_weights, "hard_coded_group_weights", float, 1.0)
        )
        self._input_data_corrections = _CorrectionsSet()

    def _per_channel(self, values, label: str, dtype, default) -> np.ndarray:
        if values is None:
            return np.full(self.n_channels, default, dtype=dtype)
        arr = np.asarray(values, dtype=dtype)
        if arr.shape != (self.n_channels,):
            raise ValueError(f"{label} must have shape ({self.n_channels},), got {arr.shape}")
        return arr

    @property
    def input_data_corrections(self) -> List[CorrectionOnInputData]:
        return list(self._input_data_corrections)

    def add_correction_on_input_data(self, step: CorrectionOnInputData) -> None:
        step.set_configuration_owner(self)
        self._input_data_corrections.add(step)

    def _all_steps(self) -> List[CorrectionStep]:
        return list(self._input_data_corrections) + list(self._qn_vector_corrections)

    def add_data_vector(self, channel_id: int, phi: float, weight: float = 1.0) -> bool:  # type: ignore[override]
        """Add one channel signal. Returns False when the channel is not in use."""
        ch = int(channel_id)
        if not (0 <= ch < self.n_channels):
            raise ValueError(f"Channel {ch} out of range for {self.name!r} with {self.n_channels} channels")
        if not self.used_channels[ch]:
            return False
        self._data_vector_bank.add_data_vector(phi, weight, ch)
        return True

    def _contribution_weights(self) -> np.ndarray:
        return self._data_vector_bank.equalized_weights()

    def process_input_data_corrections(self, variables: np.ndarray) -> bool:
        for step in self._input_data_corrections:
            step.process_data_collection(variables)
            if not step.process_corrections(variables):
                return False
        return True

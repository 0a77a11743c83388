from __future__ import annotations

"""Correction-step contract shared by every correction.

State machine
-------------
Each step advances monotonically through::

    CALIBRATION -> APPLY_COLLECT -> APPLY

* ``CALIBRATION``: no calibration input is available. The step only collects
  statistics for the next pass; nothing is corrected.
* ``APPLY_COLLECT``: calibration from a previous pass was attached. The step
  collects statistics for the next pass *and* applies the correction with the
  previous pass parameters.
* ``APPLY``: the step only applies its correction.

Per event, a detector configuration calls ``process_data_collection`` and then
``process_corrections`` on each step, and ``clear_correction_step`` at the end
of the event. Each state has its own handler; ``APPLY_COLLECT`` composes
"collected already" with "apply" explicitly.

Collection and application read different vectors: collection reads the
step's designated *input* vector (the previous step's output, captured once in
``create_support_data_structures``); application reads the detector's *live
current* vector.

Concrete steps implement :meth:`CorrectionStep._collect` and
:meth:`CorrectionStep._apply`.
"""

import enum
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

import numpy as np

from ..calibration.container import CalibrationContainer
from ..models.profile import DEFAULT_PROFILE, CorrectionsProfile
from ..models.qn_vector import QnVector

if TYPE_CHECKING:  # pragma: no cover
    from ..detector.configuration import ChannelizedDetectorConfiguration, DetectorConfiguration

logger = logging.getLogger(__name__)


class CorrectionStepState(enum.IntEnum):
    CALIBRATION = 0
    APPLY_COLLECT = 1
    APPLY = 2


COLLECTING_STATES = frozenset({CorrectionStepState.CALIBRATION, CorrectionStepState.APPLY_COLLECT})
APPLYING_STATES = frozenset({CorrectionStepState.APPLY_COLLECT, CorrectionStepState.APPLY})


class CorrectionStep:
    """Base class of every correction step.

    Parameters
    ----------
    name:
        Human readable correction name, used in usage reports.
    key:
        Ordering key; steps of one detector configuration run in ascending key order.
    """

    def __init__(self, name: str, key: str, *, profile: CorrectionsProfile = DEFAULT_PROFILE) -> None:
        self.name = str(name)
        self.key = str(key)
        self.profile = profile
        self._state = CorrectionStepState.CALIBRATION
        self._detector_configuration: Optional["DetectorConfiguration"] = None
        self._collected_this_event = False
        self._applied_this_event = False

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    @property
    def detector_configuration(self) -> "DetectorConfiguration":
        if self._detector_configuration is None:
            raise RuntimeError(f"Correction step {self.name!r} is not attached to a detector configuration")
        return self._detector_configuration

    def set_configuration_owner(self, configuration: "DetectorConfiguration") -> None:
        if self._detector_configuration is not None and self._detector_configuration is not configuration:
            raise RuntimeError(
                f"Correction step {self.name!r} already belongs to "
                f"{self._detector_configuration.name!r}"
            )
        self._detector_configuration = configuration

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CorrectionStepState:
        return self._state

    def _advance_to(self, state: CorrectionStepState) -> None:
        if state < self._state:
            raise RuntimeError(
                f"Correction step {self.name!r} cannot go back from {self._state.name} to {state.name}"
            )
        self._state = state

    def freeze(self) -> None:
        """Stop collecting: APPLY_COLLECT -> APPLY."""
        if self._state == CorrectionStepState.APPLY:
            return
        if self._state != CorrectionStepState.APPLY_COLLECT:
            raise RuntimeError(f"Correction step {self.name!r} has no calibration attached; cannot freeze it")
        self._advance_to(CorrectionStepState.APPLY)
        logger.info("%s on %s frozen: applying only", self.name, self.detector_configuration.name)

    @property
    def is_being_applied(self) -> bool:
        return self._state in APPLYING_STATES

    @property
    def is_collecting(self) -> bool:
        return self._state in COLLECTING_STATES

    # ------------------------------------------------------------------
    # Setup hooks
    # ------------------------------------------------------------------

    def create_support_data_structures(self) -> None:
        """Allocate per-run structures once the owner configuration is known."""

    def create_support_histograms(self, container: CalibrationContainer) -> bool:
        raise NotImplementedError

    def attach_input(self, container: CalibrationContainer) -> bool:
        raise NotImplementedError

    def create_qa_histograms(self, container: CalibrationContainer) -> bool:
        return True

    def create_nve_qa_histograms(self, container: CalibrationContainer) -> bool:
        return True

    # ------------------------------------------------------------------
    # Per-event processing
    # ------------------------------------------------------------------

    def process_data_collection(self, variables: np.ndarray) -> bool:
        """Feed this event into the calibration store for the next pass.

        Returns True when the step is (also) applying in the current state.
        """
        handlers: Dict[CorrectionStepState, Callable[[np.ndarray], bool]] = {
            CorrectionStepState.CALIBRATION: self._collect_only,
            CorrectionStepState.APPLY_COLLECT: self._collect_before_apply,
            CorrectionStepState.APPLY: self._nothing_to_collect,
        }
        return handlers[self._state](variables)

    def process_corrections(self, variables: np.ndarray) -> bool:
        """Apply the correction for this event. Returns True if it was applied."""
        handlers: Dict[CorrectionStepState, Callable[[np.ndarray], bool]] = {
            CorrectionStepState.CALIBRATION: self._not_applied,
            CorrectionStepState.APPLY_COLLECT: self._apply_after_collect,
            CorrectionStepState.APPLY: self._apply_once,
        }
        return handlers[self._state](variables)

    def _mark_collected(self) -> None:
        if self._collected_this_event:
            raise RuntimeError(
                f"{self.name!r}: data already collected for this event; "
                f"clear_correction_step() must run between events"
            )
        self._collected_this_event = True

    def _collect_only(self, variables: np.ndarray) -> bool:
        self._mark_collected()
        self._collect(variables)
        return False

    def _collect_before_apply(self, variables: np.ndarray) -> bool:
        if self._applied_this_event:
            raise RuntimeError(f"{self.name!r}: data collection must precede the correction within an event")
        self._mark_collected()
        self._collect(variables)
        return True

    def _nothing_to_collect(self, variables: np.ndarray) -> bool:
        return True

    def _not_applied(self, variables: np.ndarray) -> bool:
        return False

    def _apply_after_collect(self, variables: np.ndarray) -> bool:
        if not self._collected_this_event:
            raise RuntimeError(
                f"{self.name!r}: in APPLY_COLLECT, process_data_collection() must run "
                f"before process_corrections() for the same event"
            )
        return self._apply_once(variables)

    def _apply_once(self, variables: np.ndarray) -> bool:
        if self._applied_this_event:
            raise RuntimeError(
                f"{self.name!r}: correction already applied for this event; "
                f"clear_correction_step() must run between events"
            )
        self._applied_this_event = True
        self._apply(variables)
        return True

    def _collect(self, variables: np.ndarray) -> None:
        raise NotImplementedError

    def _apply(self, variables: np.ndarray) -> None:
        raise NotImplementedError

    def clear_correction_step(self) -> None:
        """End of event: forget the per-event bookkeeping."""
        self._collected_this_event = False
        self._applied_this_event = False

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def report_usage(self, collecting: List[str], applying: List[str]) -> bool:
        """Append this step's name to the lists it contributes to. Returns True if applying."""
        if self._state in COLLECTING_STATES:
            collecting.append(self.name)
        if self._state in APPLYING_STATES:
            applying.append(self.name)
            return True
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, key={self.key!r}, state={self._state.name})"


class CorrectionOnQnVector(CorrectionStep):
    """Correction step whose input and output are Qn vectors.

    The step owns one output vector, allocated once in
    :meth:`create_support_data_structures` and reset every event.
    """

    corrected_qn_vector_name = "corrected"

    def __init__(self, name: str, key: str, *, profile: CorrectionsProfile = DEFAULT_PROFILE) -> None:
        super().__init__(name, key, profile=profile)
        self._corrected_qn_vector: Optional[QnVector] = None
        self._input_qn_vector: Optional[QnVector] = None

    @property
    def corrected_qn_vector(self) -> QnVector:
        if self._corrected_qn_vector is None:
            raise RuntimeError(f"{self.name!r}: create_support_data_structures() has not been called")
        return self._corrected_qn_vector

    @property
    def input_qn_vector(self) -> QnVector:
        if self._input_qn_vector is None:
            raise RuntimeError(f"{self.name!r}: create_support_data_structures() has not been called")
        return self._input_qn_vector

    def create_support_data_structures(self) -> None:
        config = self.detector_configuration
        if self._corrected_qn_vector is None:
            self._corrected_qn_vector = QnVector(
                self.corrected_qn_vector_name,
                config.n_harmonics,
                config.harmonic_map(),
                profile=self.profile,
            )
        self._input_qn_vector = config.previous_corrected_qn_vector(self)

    def clear_correction_step(self) -> None:
        super().clear_correction_step()
        if self._corrected_qn_vector is not None:
            self._corrected_qn_vector.reset()


class CorrectionOnInputData(CorrectionStep):
    """Correction step working on the data vectors of a channelized detector."""

    @property
    def detector_configuration(self) -> "ChannelizedDetectorConfiguration":
        return super().detector_configuration  # type: ignore[return-value]

from __future__ import annotations

"""Recentering and width equalization of Qn vectors.

Per active harmonic ``h`` and event class::

    Qx' = (Qx - <Qx>) / sigma_x
    Qy' = (Qy - <Qy>) / sigma_y

with ``sigma = 1`` unless width equalization is enabled. The means and spreads
come from the profile attached from the previous pass. A bin with too few
entries leaves the vector untouched and is counted in the not-validated QA
counter.
"""

import logging
from typing import List, Optional

import numpy as np

from ..calibration.container import CalibrationContainer
from ..calibration.stores import EventClassCounter, ProfileStore
from ..models.profile import DEFAULT_PROFILE, CorrectionsProfile
from .correction_step import CorrectionOnQnVector, CorrectionStepState

logger = logging.getLogger(__name__)


def qn_component_names(harmonic: int) -> tuple:
    """Store components holding the X/Y profile of ``harmonic``."""
    return (f"X{int(harmonic)}", f"Y{int(harmonic)}")


class QnVectorRecentering(CorrectionOnQnVector):
    """Recentering (and optional width equalization) correction step."""

    correction_name = "Recentering and width equalization"
    correction_key = "CCCC"
    support_histogram_name = "Qn"
    corrected_qn_vector_name = "rec"
    qa_not_validated_histogram_name = "Rec NvE"

    def __init__(
        self,
        *,
        apply_width_equalization: bool = False,
        min_entries_to_validate: Optional[int] = None,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> None:
        super().__init__(self.correction_name, self.correction_key, profile=profile)
        self.apply_width_equalization = bool(apply_width_equalization)
        self.min_entries_to_validate = int(
            profile.min_entries_to_validate if min_entries_to_validate is None else min_entries_to_validate
        )
        self._input_store: Optional[ProfileStore] = None
        self._calibration_store: Optional[ProfileStore] = None
        self._qa_not_validated: Optional[EventClassCounter] = None

    def _store_name(self, base: str) -> str:
        return f"{base} {self.detector_configuration.name}"

    @property
    def calibration_store(self) -> Optional[ProfileStore]:
        return self._calibration_store

    @property
    def input_store(self) -> Optional[ProfileStore]:
        return self._input_store

    @property
    def qa_not_validated(self) -> Optional[EventClassCounter]:
        return self._qa_not_validated

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_support_histograms(self, container: CalibrationContainer) -> bool:
        self._calibration_store = ProfileStore(
            self._store_name(self.support_histogram_name),
            min_entries=self.min_entries_to_validate,
            profile=self.profile,
        )
        container.register(self._calibration_store)
        return True

    def attach_input(self, container: CalibrationContainer) -> bool:
        store = container.get(self._store_name(self.support_histogram_name))
        if not isinstance(store, ProfileStore) or store.is_empty:
            logger.warning("No recentering calibration found for %s", self.detector_configuration.name)
            return False
        # the threshold is a property of this step, not of the persisted sums
        store.min_entries = self.min_entries_to_validate
        self._input_store = store
        if self._state == CorrectionStepState.CALIBRATION:
            self._advance_to(CorrectionStepState.APPLY_COLLECT)
        logger.info("Recentering on %s going to be applied", self.detector_configuration.name)
        return True

    def create_nve_qa_histograms(self, container: CalibrationContainer) -> bool:
        self._qa_not_validated = EventClassCounter(self._store_name(self.qa_not_validated_histogram_name))
        container.register(self._qa_not_validated)
        return True

    # ------------------------------------------------------------------
    # Per-event
    # ------------------------------------------------------------------

    def _collect(self, variables: np.ndarray) -> None:
        qn = self.input_qn_vector
        if not qn.good_quality or self._calibration_store is None:
            return
        ec_bin = self.detector_configuration.event_classes.get_bin(variables)
        for h in qn.harmonics():
            cx, cy = qn_component_names(h)
            self._calibration_store.fill(ec_bin, cx, qn.qx(h))
            self._calibration_store.fill(ec_bin, cy, qn.qy(h))

    def _bin_validated(self, ec_bin, harmonics: List[int]) -> bool:
        eps = self.profile.min_significant_value
        for h in harmonics:
            for comp in qn_component_names(h):
                reading = self._input_store.read(ec_bin, comp)
                if not reading.validated:
                    return False
                if self.apply_width_equalization and reading.width < eps:
                    return False
        return True

    def _apply(self, variables: np.ndarray) -> None:
        config = self.detector_configuration
        current = config.current_qn_vector
        corrected = self.corrected_qn_vector

        if not current.good_quality:
            corrected.set_good(False)
            config.update_current_qn_vector(corrected)
            return

        corrected.set(current)
        ec_bin = config.event_classes.get_bin(variables)
        harmonics = list(current.harmonics())
        if self._bin_validated(ec_bin, harmonics):
            for h in harmonics:
                cx, cy = qn_component_names(h)
                rx = self._input_store.read(ec_bin, cx)
                ry = self._input_store.read(ec_bin, cy)
                width_x = rx.width if self.apply_width_equalization else 1.0
                width_y = ry.width if self.apply_width_equalization else 1.0
                corrected.set_qx(h, (current.qx(h) - rx.content) / width_x)
                corrected.set_qy(h, (current.qy(h) - ry.content) / width_y)
        elif self._qa_not_validated is not None:
            self._qa_not_validated.fill(ec_bin, 1.0)
        config.update_current_qn_vector(corrected)
        logger.debug("Recentering applied on %s", config.name)

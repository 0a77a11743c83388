from __future__ import annotations

"""Gain equalization of the input channels of a channelized detector.

Runs on the data vectors *before* the Qn vector is built. Every raw channel
weight is folded into a per-channel multiplicity profile while collecting; when
applying, each data vector's ``equalized_weight`` is rewritten according to the
selected method:

* ``none``:    ``w_eq = w``
* ``average``: ``w_eq = (w / <w>_ch) * g``
* ``width``:   ``w_eq = (a + b * (w - <w>_ch) / sigma_ch) * g``

``<w>_ch`` and ``sigma_ch`` come from the attached profile for the current
event class and channel. ``g`` is the group weight (from the profile when group
equalization is enabled, otherwise the configuration's hard-coded weights,
otherwise 1.0). A channel whose calibration is not significant gets weight 0.
"""

import enum
import logging
from typing import Optional, Union

import numpy as np

from ..calibration.container import CalibrationContainer
from ..calibration.stores import ChannelizedProfileStore
from ..models.profile import DEFAULT_PROFILE, CorrectionsProfile
from .correction_step import CorrectionOnInputData, CorrectionStepState

logger = logging.getLogger(__name__)


class EqualizationMethod(str, enum.Enum):
    NONE = "none"
    AVERAGE = "average"
    WIDTH = "width"


class InputGainEqualization(CorrectionOnInputData):
    """Channel gain equalization on input data vectors."""

    correction_name = "Gain equalization"
    correction_key = "AAAA"
    support_histogram_name = "Multiplicity"

    def __init__(
        self,
        method: Union[EqualizationMethod, str] = EqualizationMethod.NONE,
        *,
        shift: float = 0.0,
        scale: float = 1.0,
        use_channel_groups_weights: bool = False,
        profile: CorrectionsProfile = DEFAULT_PROFILE,
    ) -> None:
        super().__init__(self.correction_name, self.correction_key, profile=profile)
        self.method = EqualizationMethod(method)
        self.shift = float(shift)  # a
        self.scale = float(scale)  # b
        self.use_channel_groups_weights = bool(use_channel_groups_weights)
        self._input_store: Optional[ChannelizedProfileStore] = None
        self._calibration_store: Optional[ChannelizedProfileStore] = None
        self._hard_coded_weights: Optional[np.ndarray] = None

    def _store_name(self) -> str:
        return f"{self.support_histogram_name} {self.detector_configuration.name}"

    @property
    def calibration_store(self) -> Optional[ChannelizedProfileStore]:
        return self._calibration_store

    @property
    def input_store(self) -> Optional[ChannelizedProfileStore]:
        return self._input_store

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_support_histograms(self, container: CalibrationContainer) -> bool:
        self._calibration_store = ChannelizedProfileStore(self._store_name(), profile=self.profile)
        container.register(self._calibration_store)
        return True

    def attach_input(self, container: CalibrationContainer) -> bool:
        config = self.detector_configuration
        store = container.get(self._store_name())
        if not isinstance(store, ChannelizedProfileStore) or store.is_empty:
            logger.warning("No gain equalization calibration found for %s", config.name)
            return False
        self._input_store = store
        self._hard_coded_weights = config.hard_coded_group_weights
        if self._state == CorrectionStepState.CALIBRATION:
            self._advance_to(CorrectionStepState.APPLY_COLLECT)
        logger.info("Gain equalization on %s going to be applied", config.name)
        return True

    # ------------------------------------------------------------------
    # Per-event
    # ------------------------------------------------------------------

    def _collect(self, variables: np.ndarray) -> None:
        config = self.detector_configuration
        ec_bin = config.event_classes.get_bin(variables)
        if ec_bin is None or self._calibration_store is None:
            return
        for dv in config.data_vector_bank:
            self._calibration_store.fill_channel(ec_bin, dv.channel_id, dv.weight)

    def _group_weight(self, ec_bin, channel: int) -> float:
        config = self.detector_configuration
        if self.use_channel_groups_weights and config.channel_groups is not None:
            return self._input_store.group_weight(ec_bin, channel, config.channel_groups, config.used_channels)
        if self._hard_coded_weights is not None:
            return float(self._hard_coded_weights[channel])
        return 1.0

    def _apply(self, variables: np.ndarray) -> None:
        config = self.detector_configuration
        bank = config.data_vector_bank
        if self.method == EqualizationMethod.NONE:
            for dv in bank:
                dv.set_equalized_weight(dv.weight)
            return

        ec_bin = config.event_classes.get_bin(variables)
        eps = self.profile.min_significant_value
        for dv in bank:
            reading = self._input_store.read_channel(ec_bin, dv.channel_id)
            average = reading.content
            if average <= eps:
                dv.set_equalized_weight(0.0)
                continue
            group_weight = self._group_weight(ec_bin, dv.channel_id)
            if self.method == EqualizationMethod.AVERAGE:
                dv.set_equalized_weight((dv.weight / average) * group_weight)
            else:
                width = reading.width
                if width <= eps:
                    dv.set_equalized_weight(0.0)
                    continue
                dv.set_equalized_weight((self.shift + self.scale * (dv.weight - average) / width) * group_weight)
        logger.debug("Gain equalization (%s) applied on %s", self.method.value, config.name)

"""Correction steps.

Every step follows the CALIBRATION -> APPLY_COLLECT -> APPLY contract of
:class:`~qn_corrections.corrections.correction_step.CorrectionStep`.
Steps on input data run before the Qn vector is built; steps on Qn vectors run
in key order on the detector's current Qn vector.
"""

from .correction_step import (
    APPLYING_STATES,
    COLLECTING_STATES,
    CorrectionOnInputData,
    CorrectionOnQnVector,
    CorrectionStep,
    CorrectionStepState,
)
from .gain_equalization import EqualizationMethod, InputGainEqualization
from .recentering import QnVectorRecentering, qn_component_names

__all__ = [
    "APPLYING_STATES",
    "COLLECTING_STATES",
    "CorrectionOnInputData",
    "CorrectionOnQnVector",
    "CorrectionStep",
    "CorrectionStepState",
    "EqualizationMethod",
    "InputGainEqualization",
    "QnVectorRecentering",
    "qn_component_names",
]

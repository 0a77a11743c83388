"""Calibration-statistics collaborators.

The correction steps treat calibration statistics as an opaque keyed store:
they ``fill`` values keyed by event-class bin and component, and ``read`` back
a content, a width and a validity flag. This subpackage provides the minimal
concrete stores, the event-class binning that produces the keys, and the
container used to hand stores from one pass to the next.
"""

from .container import CalibrationContainer
from .event_classes import EventClassBin, EventClassVariable, EventClassVariablesSet
from .stores import BinReading, ChannelizedProfileStore, EventClassCounter, ProfileStore

__all__ = [
    "BinReading",
    "CalibrationContainer",
    "ChannelizedProfileStore",
    "EventClassBin",
    "EventClassCounter",
    "EventClassVariable",
    "EventClassVariablesSet",
    "ProfileStore",
]

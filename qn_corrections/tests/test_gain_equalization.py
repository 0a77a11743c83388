"""Tests for channel gain equalization on input data vectors."""

from __future__ import annotations

import numpy as np
import pytest

from qn_corrections.calibration import (
    CalibrationContainer,
    ChannelizedProfileStore,
    EventClassVariable,
    EventClassVariablesSet,
)
from qn_corrections.corrections import CorrectionStepState, EqualizationMethod, InputGainEqualization
from qn_corrections.detector import ChannelizedDetectorConfiguration

VARS = np.array([10.0])
BIN = (0,)


def _config(step: InputGainEqualization, **kwargs) -> ChannelizedDetectorConfiguration:
    ecs = EventClassVariablesSet([EventClassVariable.uniform(0, "centrality", 4, 0.0, 100.0)])
    cfg = ChannelizedDetectorConfiguration("V0", ecs, 2, n_channels=4, **kwargs)
    cfg.add_correction_on_input_data(step)
    cfg.create_support_data_structures()
    return cfg


def _calibration() -> CalibrationContainer:
    """Previous-pass multiplicities for bin 0.

    channel 0: mean 4, width 0
    channel 1: mean 1e-7 (not significant)
    channel 2: mean 4, width 2
    channel 3: mean 12, width 0
    """
    cont = CalibrationContainer("pass1")
    store = cont.register(ChannelizedProfileStore("Multiplicity V0"))
    for v in (4.0, 4.0):
        store.fill_channel(BIN, 0, v)
    for v in (1e-7, 1e-7):
        store.fill_channel(BIN, 1, v)
    for v in (2.0, 6.0):
        store.fill_channel(BIN, 2, v)
    for v in (12.0, 12.0):
        store.fill_channel(BIN, 3, v)
    return cont


def _run(cfg, *signals):
    for ch, phi, w in signals:
        cfg.add_data_vector(ch, phi, w)
    cfg.process_input_data_corrections(VARS)
    return [dv.equalized_weight for dv in cfg.data_vector_bank]


# -----------------------------------------------------------------------
# Attach / state
# -----------------------------------------------------------------------


def test_attach_without_calibration_stays_calibrating() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step)
    assert cfg.attach_input(CalibrationContainer()) is False
    assert step.state == CorrectionStepState.CALIBRATION


def test_attach_with_calibration_applies_and_collects() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step)
    assert cfg.attach_input(_calibration()) is True
    assert step.state == CorrectionStepState.APPLY_COLLECT
    assert step.key == "AAAA"


def test_calibration_pass_collects_raw_weights() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step)
    out = CalibrationContainer("pass1")
    cfg.create_support_histograms(out)

    weights = _run(cfg, (3, 0.1, 5.0), (0, 0.2, 1.0))
    assert weights == [5.0, 1.0]  # nothing applied
    store = out.get("Multiplicity V0")
    assert store.read_channel(BIN, 3).content == pytest.approx(5.0)
    assert store.read_channel(BIN, 0).entries == 1


# -----------------------------------------------------------------------
# Methods
# -----------------------------------------------------------------------


def test_average_equalization() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    weights = _run(cfg, (0, 0.0, 2.0), (3, 0.0, 6.0))
    assert weights == pytest.approx([0.5, 0.5])


def test_insignificant_average_gives_zero_weight() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    assert _run(cfg, (1, 0.0, 3.0)) == [0.0]


def test_channel_without_calibration_gives_zero_weight() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    assert _run(cfg, (0, 0.0, 2.0)) == pytest.approx([0.5])
    cfg.clear_configuration()
    # outside the event-class binning: no reading available
    cfg.add_data_vector(0, 0.0, 2.0)
    cfg.process_input_data_corrections(np.array([150.0]))
    assert cfg.data_vector_bank[0].equalized_weight == 0.0


def test_none_method_passes_weights_through() -> None:
    step = InputGainEqualization(EqualizationMethod.NONE)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    assert _run(cfg, (1, 0.0, 3.0), (2, 0.0, 7.0)) == [3.0, 7.0]


def test_width_equalization() -> None:
    step = InputGainEqualization("width", shift=1.0, scale=0.5)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    # (1 + 0.5 * (8 - 4) / 2) * 1
    assert _run(cfg, (2, 0.0, 8.0)) == pytest.approx([2.0])


def test_width_equalization_zero_width_gives_zero_weight() -> None:
    step = InputGainEqualization(EqualizationMethod.WIDTH)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    assert _run(cfg, (0, 0.0, 8.0)) == [0.0]


# -----------------------------------------------------------------------
# Group weights
# -----------------------------------------------------------------------


def test_hard_coded_group_weights() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step, hard_coded_group_weights=[2.0, 1.0, 1.0, 3.0])
    cfg.attach_input(_calibration())
    assert _run(cfg, (0, 0.0, 2.0), (3, 0.0, 12.0)) == pytest.approx([1.0, 3.0])


def test_calibrated_group_weights() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE, use_channel_groups_weights=True)
    cfg = _config(step, channel_groups=[0, 0, 1, 1])
    cfg.attach_input(_calibration())
    # group 1: channels 2 and 3, averages 4 and 12 -> g = 8
    assert _run(cfg, (2, 0.0, 2.0)) == pytest.approx([4.0])


def test_group_weights_requested_without_groups_falls_back() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE, use_channel_groups_weights=True)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    assert _run(cfg, (2, 0.0, 2.0)) == pytest.approx([0.5])


# -----------------------------------------------------------------------
# Effect on the Qn vector
# -----------------------------------------------------------------------


def test_qn_vector_built_from_equalized_weights() -> None:
    step = InputGainEqualization(EqualizationMethod.AVERAGE)
    cfg = _config(step)
    cfg.attach_input(_calibration())
    cfg.add_data_vector(0, 0.0, 2.0)
    cfg.add_data_vector(3, np.pi / 2.0, 6.0)
    q = cfg.process_event(VARS)
    assert q is cfg.plain_qn_vector
    assert q.qx(1) == pytest.approx(0.5)
    assert q.qy(1) == pytest.approx(0.5)
    assert q.good_quality

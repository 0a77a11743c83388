"""Tests for event-class binning, calibration stores and their container."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from qn_corrections.calibration import (
    CalibrationContainer,
    ChannelizedProfileStore,
    EventClassCounter,
    EventClassVariable,
    EventClassVariablesSet,
    ProfileStore,
)


def _centrality_vertex() -> EventClassVariablesSet:
    return EventClassVariablesSet(
        [
            EventClassVariable.uniform(0, "centrality", 10, 0.0, 100.0),
            EventClassVariable(2, "vertex z", (-10.0, 0.0, 10.0)),
        ]
    )


# -----------------------------------------------------------------------
# Event classes
# -----------------------------------------------------------------------


def test_event_class_bin_lookup() -> None:
    ecs = _centrality_vertex()
    assert ecs.shape == (10, 2)
    assert ecs.get_bin(np.array([35.0, 99.0, -3.0])) == (3, 0)
    assert ecs.get_bin(np.array([0.0, 0.0, 0.0])) == (0, 1)


def test_event_class_out_of_range_gives_none() -> None:
    ecs = _centrality_vertex()
    assert ecs.get_bin(np.array([100.0, 0.0, 0.0])) is None
    assert ecs.get_bin(np.array([50.0, 0.0, -12.0])) is None
    assert ecs.get_bin(np.array([np.nan, 0.0, 0.0])) is None


def test_event_class_container_too_short() -> None:
    ecs = _centrality_vertex()
    with pytest.raises(ValueError, match="vertex z"):
        ecs.get_bin(np.array([10.0]))


def test_event_class_variable_rejects_bad_edges() -> None:
    with pytest.raises(ValueError):
        EventClassVariable(0, "x", (1.0,))
    with pytest.raises(ValueError):
        EventClassVariable(0, "x", (0.0, 2.0, 1.0))


def test_all_bins_enumerates_grid() -> None:
    ecs = _centrality_vertex()
    bins = list(ecs.all_bins())
    assert len(bins) == 20
    assert bins[0] == (0, 0) and bins[-1] == (9, 1)


# -----------------------------------------------------------------------
# Profile stores
# -----------------------------------------------------------------------


def test_profile_mean_width_and_validation() -> None:
    s = ProfileStore("Qn test", min_entries=3)
    for v in (1.0, 2.0, 3.0):
        s.fill((0,), "X1", v)
    r = s.read((0,), "X1")
    assert r.content == pytest.approx(2.0)
    assert r.width == pytest.approx(np.std([1.0, 2.0, 3.0]))
    assert r.entries == 3
    assert r.validated

    s.fill((1,), "X1", 5.0)
    assert not s.read((1,), "X1").validated


def test_profile_weighted_mean() -> None:
    s = ProfileStore("w")
    s.fill((0,), "c", 1.0, weight=3.0)
    s.fill((0,), "c", 5.0, weight=1.0)
    assert s.read((0,), "c").content == pytest.approx(2.0)


def test_profile_missing_key_and_outside_bin() -> None:
    s = ProfileStore("s")
    s.fill(None, "X1", 10.0)
    assert s.is_empty
    r = s.read((0,), "X1")
    assert (r.content, r.width, r.entries, r.validated) == (0.0, 0.0, 0, False)
    assert not s.read(None, "X1").validated


def test_profile_merge_equals_single_fill() -> None:
    rng = np.random.default_rng(1)
    values = rng.normal(size=40)
    whole = ProfileStore("s")
    part_a = ProfileStore("s")
    part_b = ProfileStore("s")
    for i, v in enumerate(values):
        whole.fill((0,), "X2", v)
        (part_a if i % 2 else part_b).fill((0,), "X2", v)
    part_a.merge(part_b)
    ra = part_a.read((0,), "X2")
    rw = whole.read((0,), "X2")
    assert ra.entries == rw.entries == 40
    assert ra.content == pytest.approx(rw.content)
    assert ra.width == pytest.approx(rw.width)


def test_channelized_group_weight() -> None:
    s = ChannelizedProfileStore("Multiplicity d")
    # channels 0,1 in group 0; channels 2,3 in group 1
    for ch, avg in enumerate((2.0, 4.0, 10.0, 30.0)):
        s.fill_channel((0,), ch, avg)
    groups = [0, 0, 1, 1]
    assert s.group_weight((0,), 1, groups) == pytest.approx(3.0)
    assert s.group_weight((0,), 2, groups) == pytest.approx(20.0)
    assert s.group_weight((0,), 2, groups, used_channels=[True, True, True, False]) == pytest.approx(10.0)
    assert s.group_weight((5,), 0, groups) == 0.0


def test_event_class_counter() -> None:
    c = EventClassCounter("Rec NvE d")
    c.fill((1, 0))
    c.fill((1, 0))
    c.fill(None)
    c.fill((2, 1), 0.5)
    assert c.count((1, 0)) == 2.0
    assert c.count((0, 0)) == 0.0
    assert c.total == pytest.approx(2.5)


# -----------------------------------------------------------------------
# Container
# -----------------------------------------------------------------------


def _filled_container() -> CalibrationContainer:
    cont = CalibrationContainer("pass1")
    prof = cont.register(ProfileStore("Qn d"))
    for v in (1.0, 3.0):
        prof.fill((2, 1), "X2", v)
        prof.fill((2, 1), "Y2", -v)
    ch = cont.register(ChannelizedProfileStore("Multiplicity d"))
    ch.fill_channel((0, 0), 12, 4.0)
    cnt = cont.register(EventClassCounter("Rec NvE d"))
    cnt.fill((3, 0))
    return cont


def test_container_frame_layout() -> None:
    df = _filled_container().to_frame()
    assert list(df.columns) == ["store", "kind", "bin", "component", "entries", "sum_w", "sum_wx", "sum_wx2"]
    assert set(df["kind"]) == {"profile", "channelized", "counter"}
    assert (df["bin"] == "2,1").sum() == 2


def test_container_csv_roundtrip(tmp_path) -> None:
    cont = _filled_container()
    path = cont.save_csv(tmp_path / "calib.csv")
    loaded = CalibrationContainer.load_csv(path)

    assert loaded.names() == cont.names()
    prof = loaded.get("Qn d")
    assert isinstance(prof, ProfileStore)
    r = prof.read((2, 1), "X2")
    assert r.content == pytest.approx(2.0)
    assert r.entries == 2
    assert prof.read((2, 1), "Y2").content == pytest.approx(-2.0)

    ch = loaded.get("Multiplicity d")
    assert isinstance(ch, ChannelizedProfileStore)
    assert ch.read_channel((0, 0), 12).content == pytest.approx(4.0)

    cnt = loaded.get("Rec NvE d")
    assert isinstance(cnt, EventClassCounter)
    assert cnt.count((3, 0)) == 1.0


def test_container_merge() -> None:
    a = _filled_container()
    b = _filled_container()
    b.register(ProfileStore("Qn other")).fill((0, 0), "X1", 1.0)
    a.merge(b)
    assert a.get("Qn d").read((2, 1), "X2").entries == 4
    assert a.get("Rec NvE d").count((3, 0)) == 2.0
    assert "Qn other" in a


def test_container_merge_kind_mismatch() -> None:
    a = CalibrationContainer()
    a.register(ProfileStore("x"))
    b = CalibrationContainer()
    b.register(EventClassCounter("x"))
    with pytest.raises(ValueError, match="Cannot merge"):
        a.merge(b)


def test_container_rejects_malformed_frame(tmp_path) -> None:
    p = tmp_path / "bad.csv"
    pd.DataFrame({"store": ["x"], "bin": ["0"]}).to_csv(p, index=False)
    with pytest.raises(ValueError, match="missing required columns"):
        CalibrationContainer.load_csv(p)

"""Tests for CorrectionsProfile and the data vector bank."""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from qn_corrections.models import DEFAULT_PROFILE, CorrectionsProfile, DataVector, DataVectorBank


def test_profile_defaults() -> None:
    p = CorrectionsProfile()
    assert p.min_significant_value == 1e-6
    assert p.max_harmonic == 15
    assert p.min_entries_to_validate == 2
    assert DEFAULT_PROFILE == p


def test_profile_frozen() -> None:
    p = CorrectionsProfile()
    with pytest.raises(dataclasses.FrozenInstanceError):
        p.max_harmonic = 3  # type: ignore[misc]


def test_profile_replace_and_dict_roundtrip() -> None:
    p = dataclasses.replace(DEFAULT_PROFILE, min_entries_to_validate=10)
    assert p.min_entries_to_validate == 10
    assert p.max_harmonic == 15
    assert CorrectionsProfile.from_dict(p.to_dict()) == p


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_harmonic": 16},
        {"max_harmonic": 0},
        {"min_significant_value": 0.0},
        {"min_entries_to_validate": 0},
    ],
)
def test_profile_rejects_invalid_values(kwargs) -> None:
    with pytest.raises(ValueError):
        CorrectionsProfile(**kwargs)


# -----------------------------------------------------------------------
# Data vectors
# -----------------------------------------------------------------------


def test_equalized_weight_defaults_to_raw_weight() -> None:
    dv = DataVector(phi=0.5, weight=3.0, channel_id=7)
    assert dv.equalized_weight == 3.0
    dv.set_equalized_weight(1.5)
    assert dv.equalized_weight == 1.5
    assert dv.weight == 3.0


def test_bank_views_and_clear() -> None:
    bank = DataVectorBank()
    bank.add_data_vector(0.1, 2.0, 0)
    bank.add_data_vector(0.2, 4.0)
    bank[0].set_equalized_weight(1.0)

    assert len(bank) == 2
    np.testing.assert_allclose(bank.phis(), [0.1, 0.2])
    np.testing.assert_allclose(bank.weights(), [2.0, 4.0])
    np.testing.assert_allclose(bank.equalized_weights(), [1.0, 4.0])
    np.testing.assert_array_equal(bank.channel_ids(), [0, -1])

    bank.clear()
    assert len(bank) == 0
    assert bank.phis().shape == (0,)

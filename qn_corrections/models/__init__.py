from .data_vector import DataVector, DataVectorBank
from .profile import DEFAULT_PROFILE, HARMONIC_BITSET_WIDTH, CorrectionsProfile
from .qn_vector import NO_MORE_HARMONICS, HarmonicMask, QnVector, QnVectorBuild

__all__ = [
    "CorrectionsProfile",
    "DEFAULT_PROFILE",
    "HARMONIC_BITSET_WIDTH",
    "DataVector",
    "DataVectorBank",
    "HarmonicMask",
    "NO_MORE_HARMONICS",
    "QnVector",
    "QnVectorBuild",
]

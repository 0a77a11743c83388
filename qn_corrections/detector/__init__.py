from .configuration import ChannelizedDetectorConfiguration, DetectorConfiguration, QnNormalization

__all__ = [
    "ChannelizedDetectorConfiguration",
    "DetectorConfiguration",
    "QnNormalization",
]

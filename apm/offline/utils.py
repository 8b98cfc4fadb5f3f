"""
General Utility Definitions

This module contains the type aliases and data classes shared by the
codec, scheduler, engine and pipeline modules.

See Also:
    - config: For centralized configuration management
    - math_utils: For per-frame signal statistics
"""

import numpy as np
from dataclasses import dataclass
from typing import Tuple

from .config import BITS_PER_SAMPLE

# Type aliases for improved readability
Frame = np.ndarray  # Shape: (samples * channels,), dtype int16, interleaved
FramePair = Tuple[np.ndarray, np.ndarray]  # (far-end frame, near-end frame)

SAMPLE_DTYPE = np.dtype('<i2')  # little-endian signed 16-bit


@dataclass(frozen=True)
class StreamDescriptor:
    """
    Format of one PCM stream.

    Attributes:
        sample_rate: Sample rate in Hz
        channels: Number of interleaved channels
        bits_per_sample: Always 16 for the supported container
    """
    sample_rate: int
    channels: int
    bits_per_sample: int = BITS_PER_SAMPLE

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        """Bytes per interleaved sample frame (all channels)"""
        return self.channels * self.bytes_per_sample

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.block_align

    def __str__(self) -> str:
        return f"{self.sample_rate}Hz, {self.channels} channels"

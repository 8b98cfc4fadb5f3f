"""
Signal Statistics Module

Small numeric helpers shared by the diagnostics recorder and the
bundled processing engine.
"""

import numpy as np
from typing import Optional


def frame_rms(frame: np.ndarray) -> float:
    """
    Root-mean-square amplitude of a frame, in raw sample units.

    Args:
        frame: int16 samples (any layout)

    Returns:
        RMS amplitude; 0.0 for an empty frame
    """
    if frame.size == 0:
        return 0.0
    samples = frame.astype(np.float64)
    return float(np.sqrt(np.mean(samples * samples)))


def frame_peak(frame: np.ndarray) -> int:
    """
    Peak absolute amplitude of a frame.

    Computed in 32-bit so that -32768 reports 32768 instead of wrapping.
    """
    if frame.size == 0:
        return 0
    return int(np.max(np.abs(frame.astype(np.int32))))


def power_to_db(numerator: float, denominator: float) -> Optional[float]:
    """10*log10(numerator/denominator), or None when either power is zero."""
    if numerator <= 0.0 or denominator <= 0.0:
        return None
    return float(10.0 * np.log10(numerator / denominator))


def deinterleave(frame: np.ndarray, channels: int) -> np.ndarray:
    """Interleaved 1-D frame to float64 array of shape (channels, n_samples)."""
    return frame.astype(np.float64).reshape(-1, channels).T


def interleave(channels_data: np.ndarray) -> np.ndarray:
    """(channels, n_samples) float array back to interleaved, saturated int16."""
    clipped = np.clip(np.round(channels_data.T.reshape(-1)), -32768, 32767)
    return clipped.astype(np.int16)


def downmix(frame: np.ndarray, channels: int) -> np.ndarray:
    """Average the channels of an interleaved frame into one float64 signal."""
    return deinterleave(frame, channels).mean(axis=0)

"""
Frame Scheduling Module

This module derives per-stream frame sizes from each stream's own sample
rate and channel count, and pulls synchronized frame pairs from the
far-end and near-end payloads until either one runs out.
"""

import numpy as np
from typing import BinaryIO, Iterator, Optional

from .config import DEFAULT_BLOCK_MS
from .exceptions import FormatError
from .utils import StreamDescriptor, FramePair, SAMPLE_DTYPE


def frame_length(descriptor: StreamDescriptor, block_ms: int = DEFAULT_BLOCK_MS) -> int:
    """
    Number of interleaved samples in one frame of a stream.

    The per-channel count is truncated before multiplying by the channel
    count, so 22050 Hz stereo at 10 ms gives 220 * 2 = 440 samples.

    Args:
        descriptor: Stream format
        block_ms: Frame duration in milliseconds

    Returns:
        Frame length in samples (all channels)
    """
    if block_ms <= 0:
        raise ValueError("block_ms must be > 0")

    return (descriptor.sample_rate * block_ms) // 1000 * descriptor.channels


def check_alignment(play: StreamDescriptor, rec: StreamDescriptor,
                    block_ms: int = DEFAULT_BLOCK_MS) -> None:
    """
    Reject stream pairs whose per-tick frames cover different durations.

    Frames are sized from each stream's own rate. When truncation makes
    one frame shorter in real time than the other, the far-end reference
    slides against the near-end signal every tick.

    Raises:
        FormatError: if the two streams would drift apart
    """
    play_per_channel = frame_length(play, block_ms) // play.channels
    rec_per_channel = frame_length(rec, block_ms) // rec.channels

    if play_per_channel == 0 or rec_per_channel == 0:
        raise FormatError(f"Sample rate too low for {block_ms} ms frames")

    # play_per_channel / play.sample_rate == rec_per_channel / rec.sample_rate
    if play_per_channel * rec.sample_rate != rec_per_channel * play.sample_rate:
        raise FormatError(
            f"Far-end ({play.sample_rate} Hz) and near-end ({rec.sample_rate} Hz) "
            f"frames of {block_ms} ms cover different durations; streams would drift"
        )


def _read_frame(stream: BinaryIO, n_samples: int) -> Optional[np.ndarray]:
    n_bytes = n_samples * SAMPLE_DTYPE.itemsize
    raw = stream.read(n_bytes)
    if len(raw) < n_bytes:
        return None
    # Writable copy; engines transform frames in place
    return np.frombuffer(raw, dtype=SAMPLE_DTYPE).astype(np.int16)


def next_frame_pair(play_stream: BinaryIO, rec_stream: BinaryIO,
                    play_len: int, rec_len: int) -> Optional[FramePair]:
    """
    Read one far-end frame and one near-end frame.

    Both streams are read on every call. If either read comes up short the
    partial data is discarded and None is returned: this is the normal end
    of the run, not an error.

    Args:
        play_stream: Far-end payload stream
        rec_stream: Near-end payload stream
        play_len: Far-end frame length in samples
        rec_len: Near-end frame length in samples

    Returns:
        (play_frame, rec_frame) as int16 arrays, or None at end of stream
    """
    play_frame = _read_frame(play_stream, play_len)
    rec_frame = _read_frame(rec_stream, rec_len)

    if play_frame is None or rec_frame is None:
        return None

    return play_frame, rec_frame


def iter_frame_pairs(play_stream: BinaryIO, rec_stream: BinaryIO,
                     play_len: int, rec_len: int) -> Iterator[FramePair]:
    """Yield frame pairs until either stream is exhausted."""
    while True:
        pair = next_frame_pair(play_stream, rec_stream, play_len, rec_len)
        if pair is None:
            return
        yield pair

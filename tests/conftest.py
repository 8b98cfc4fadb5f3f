"""
Pytest configuration file for offline pipeline tests.
"""

import struct
import pytest
import numpy as np


def build_wav(samples: np.ndarray, sample_rate: int = 16000, channels: int = 1,
              extra_chunks=(), fmt_extra: bytes = b'', audio_format: int = 1,
              bits_per_sample: int = 16) -> bytes:
    """
    Assemble WAV bytes by hand, independently of apm.offline.io.

    extra_chunks is a sequence of (chunk_id, body) placed between the
    format chunk and the data chunk.
    """
    data = np.asarray(samples, dtype='<i2').tobytes()
    block_align = channels * bits_per_sample // 8
    fmt_body = struct.pack('<HHIIHH', audio_format, channels, sample_rate,
                           sample_rate * block_align, block_align, bits_per_sample) + fmt_extra

    chunks = b'fmt ' + struct.pack('<I', len(fmt_body)) + fmt_body
    if len(fmt_body) % 2:
        chunks += b'\x00'
    for chunk_id, body in extra_chunks:
        chunks += chunk_id + struct.pack('<I', len(body)) + body
        if len(body) % 2:
            chunks += b'\x00'
    chunks += b'data' + struct.pack('<I', len(data)) + data

    return b'RIFF' + struct.pack('<I', 4 + len(chunks)) + b'WAVE' + chunks


@pytest.fixture
def wav_bytes():
    """Factory returning WAV file contents."""
    return build_wav


@pytest.fixture
def wav_file(tmp_path):
    """Factory writing a WAV file under tmp_path and returning its path."""
    def _write(name, samples, sample_rate=16000, channels=1, **kwargs):
        path = tmp_path / name
        path.write_bytes(build_wav(samples, sample_rate, channels, **kwargs))
        return str(path)
    return _write


@pytest.fixture
def noise_signal():
    """Factory for reproducible int16 white noise."""
    def _make(n_samples, amplitude=3000, seed=0):
        rng = np.random.default_rng(seed)
        noise = rng.standard_normal(n_samples) * amplitude
        return np.clip(noise, -32768, 32767).astype(np.int16)
    return _make


@pytest.fixture
def sine_signal():
    """Factory for an int16 sine wave."""
    def _make(n_samples, sample_rate=16000, freq=440.0, amplitude=8000):
        t = np.arange(n_samples) / sample_rate
        return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.int16)
    return _make

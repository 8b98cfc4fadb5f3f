"""
Processing Engine Module

This module defines the contract of the acoustic processing engine the
pipeline feeds, together with two bundled engines: a passthrough engine
and a normalized-LMS echo canceller with optional high-pass filtering and
digital gain control.
"""

import math
import logging
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from scipy import signal

from .config import ProcessingConfig
from .math_utils import deinterleave, interleave, downmix, power_to_db
from .utils import StreamDescriptor

logger = logging.getLogger(__name__)


@dataclass
class EngineStatistics:
    """
    Metrics accumulated by an engine. None means the value is unavailable,
    typically because the echo canceller has not converged yet.
    """
    echo_return_loss: Optional[float] = None
    echo_return_loss_enhancement: Optional[float] = None
    delay_ms: Optional[int] = None
    residual_echo_likelihood: Optional[float] = None
    divergent_filter_fraction: Optional[float] = None


class ProcessingEngine(ABC):
    """
    Abstract interface for an acoustic processing engine.

    Implementations are responsible for:
    - Accepting a feature configuration once before the first frame
    - Transforming far-end (reverse) and near-end (forward) frames in place
    - Reporting accumulated statistics on request

    Frames are 1-D interleaved int16 arrays; the descriptor passed with a
    frame describes that stream only.
    """

    @abstractmethod
    def apply_config(self, config: ProcessingConfig) -> None:
        raise NotImplementedError

    @abstractmethod
    def process_reverse_stream(self, frame: np.ndarray, descriptor: StreamDescriptor) -> np.ndarray:
        """Analyze one far-end frame; returns the (possibly modified) frame."""
        raise NotImplementedError

    @abstractmethod
    def process_stream(self, frame: np.ndarray, descriptor: StreamDescriptor) -> np.ndarray:
        """Process one near-end frame in place and return it."""
        raise NotImplementedError

    @abstractmethod
    def get_statistics(self) -> EngineStatistics:
        raise NotImplementedError


class PassthroughEngine(ProcessingEngine):
    """Engine that leaves every frame untouched and reports no metrics."""

    def __init__(self):
        self.config: Optional[ProcessingConfig] = None

    def apply_config(self, config: ProcessingConfig) -> None:
        self.config = config

    def process_reverse_stream(self, frame, descriptor):
        return frame

    def process_stream(self, frame, descriptor):
        return frame

    def get_statistics(self) -> EngineStatistics:
        return EngineStatistics()


class NlmsEngine(ProcessingEngine):
    """
    Reference engine built on a normalized-LMS adaptive filter.

    The far-end frame of each tick is mixed to mono, resampled to the
    near-end rate when the rates differ, and appended to a history buffer.
    Each near-end channel is then cancelled against that history with its
    own adaptive filter.

    Processing order for a near-end frame: high-pass filter, echo
    cancellation, gain control.
    """

    def __init__(self, filter_length_ms: float = 32.0, step_size: float = 0.5,
                 smoothing: float = 0.95, warmup_frames: int = 50,
                 activity_threshold: float = 100.0):
        """
        Initialize the engine.

        Args:
            filter_length_ms: Echo path length covered by the adaptive filter
            step_size: NLMS step size (0 < mu < 2)
            smoothing: Exponential smoothing factor of the power estimates
            warmup_frames: Frames with far-end activity required before
                           statistics are reported
            activity_threshold: Far-end RMS (raw units) counted as activity
        """
        if not 0.0 < step_size < 2.0:
            raise ValueError("step_size must be in (0, 2)")

        self.filter_length_ms = filter_length_ms
        self.step_size = step_size
        self.smoothing = smoothing
        self.warmup_frames = warmup_frames
        self.activity_threshold = activity_threshold

        self.config = ProcessingConfig()
        self._descriptor: Optional[StreamDescriptor] = None
        self._pending_reference: Optional[np.ndarray] = None
        self._pending_rate: Optional[int] = None
        self._reset_state()

    def _reset_state(self) -> None:
        self._weights = None
        self._history = None
        self._hpf = None
        self._hpf_state = None
        self._gain = 1.0

        # Smoothed powers
        self._p_far = 0.0
        self._p_near = 0.0
        self._p_error = 0.0
        self._likelihood = 0.0
        self._active_frames = 0
        self._divergent_frames = 0

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def apply_config(self, config: ProcessingConfig) -> None:
        self.config = config
        if config.noise_suppression.enabled:
            logger.warning("Noise suppression is not implemented by NlmsEngine; ignoring")
        if config.gain_controller1.enabled and config.gain_controller2.enabled:
            logger.info("Both gain controllers enabled; a single digital gain stage is applied")

    def process_reverse_stream(self, frame, descriptor):
        mono = downmix(frame, descriptor.channels)
        self._pending_reference = mono
        self._pending_rate = descriptor.sample_rate
        return frame

    def process_stream(self, frame, descriptor):
        if self._descriptor != descriptor:
            self._allocate(descriptor)

        channels = descriptor.channels
        near = deinterleave(frame, channels)
        n_samples = near.shape[1]

        if self.config.high_pass_filter.enabled:
            near, self._hpf_state = signal.lfilter(
                self._hpf[0], self._hpf[1], near, axis=-1, zi=self._hpf_state
            )

        if self.config.echo_canceller.enabled:
            far = self._take_reference(descriptor.sample_rate, n_samples)
            out = self._cancel(near, far)
        else:
            out = near

        if self.config.gain_controller1.enabled or self.config.gain_controller2.enabled:
            out = self._apply_gain(out)

        frame[:] = interleave(out)
        return frame

    def get_statistics(self) -> EngineStatistics:
        if self._weights is None or self._active_frames < self.warmup_frames:
            return EngineStatistics()

        energy = np.mean(np.abs(self._weights), axis=0)
        delay_ms = int(round(int(np.argmax(energy)) * 1000.0 / self._descriptor.sample_rate))

        return EngineStatistics(
            echo_return_loss=power_to_db(self._p_far, self._p_near),
            echo_return_loss_enhancement=power_to_db(self._p_near, self._p_error),
            delay_ms=delay_ms,
            residual_echo_likelihood=float(self._likelihood),
            divergent_filter_fraction=self._divergent_frames / self._active_frames
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _allocate(self, descriptor: StreamDescriptor) -> None:
        if self._descriptor is not None:
            logger.debug(f"Near-end format changed to {descriptor}; resetting engine state")
        self._reset_state()
        self._descriptor = descriptor

        taps = max(1, int(descriptor.sample_rate * self.filter_length_ms / 1000))
        self._weights = np.zeros((descriptor.channels, taps))
        self._history = np.zeros(taps - 1)

        cutoff = self.config.high_pass_filter.cutoff_hz / (descriptor.sample_rate / 2.0)
        b, a = signal.butter(2, min(cutoff, 0.99), btype='high')
        self._hpf = (b, a)
        self._hpf_state = np.zeros((descriptor.channels, max(len(a), len(b)) - 1))

    def _take_reference(self, rate: int, n_samples: int) -> np.ndarray:
        """Pending far-end signal at the near-end rate, exactly n_samples long."""
        far = self._pending_reference
        far_rate = self._pending_rate
        self._pending_reference = None

        if far is None:
            return np.zeros(n_samples)

        if far_rate != rate:
            g = math.gcd(rate, far_rate)
            far = signal.resample_poly(far, rate // g, far_rate // g)

        if len(far) < n_samples:
            far = np.pad(far, (0, n_samples - len(far)))
        return far[:n_samples]

    def _cancel(self, near: np.ndarray, far: np.ndarray) -> np.ndarray:
        taps = self._weights.shape[1]
        history = np.concatenate([self._history, far])
        out = np.empty_like(near)
        estimate = np.empty_like(near)
        eps = 1e-6 * taps

        for i in range(near.shape[1]):
            # Newest sample first
            x_vec = history[i:i + taps][::-1]
            y_hat = self._weights @ x_vec
            err = near[:, i] - y_hat
            norm = x_vec @ x_vec + eps
            self._weights += (self.step_size * err / norm)[:, None] * x_vec[None, :]
            out[:, i] = err
            estimate[:, i] = y_hat

        self._history = history[len(history) - (taps - 1):] if taps > 1 else np.zeros(0)
        self._update_metrics(near, far, out, estimate)
        return out

    def _update_metrics(self, near, far, out, estimate) -> None:
        p_far = float(np.mean(far * far))
        if math.sqrt(p_far) < self.activity_threshold:
            return

        p_near = float(np.mean(near * near))
        p_error = float(np.mean(out * out))
        p_estimate = float(np.mean(estimate * estimate))

        a = self.smoothing
        self._p_far = a * self._p_far + (1 - a) * p_far
        self._p_near = a * self._p_near + (1 - a) * p_near
        self._p_error = a * self._p_error + (1 - a) * p_error

        corr = 0.0
        if p_error > 0.0 and p_estimate > 0.0:
            corr = abs(float(np.mean(out * estimate))) / math.sqrt(p_error * p_estimate)
        self._likelihood = a * self._likelihood + (1 - a) * min(corr, 1.0)

        self._active_frames += 1
        if p_error > p_near:
            self._divergent_frames += 1

    def _apply_gain(self, out: np.ndarray) -> np.ndarray:
        level_dbfs = self.config.gain_controller1.target_level_dbfs
        target_rms = 32768.0 * 10 ** (-level_dbfs / 20.0) / math.sqrt(2.0)
        rms = math.sqrt(float(np.mean(out * out)))

        # Only adapt on speech-like levels so silence is not pumped up
        if rms > self.activity_threshold:
            desired = min(target_rms / rms, 10 ** (30 / 20.0))
            self._gain += 0.1 * (desired - self._gain)

        return out * self._gain

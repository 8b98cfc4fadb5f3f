"""
Processing Adapter Module

The narrow contract through which the pipeline hands frames to a
processing engine. The adapter enforces call ordering: one configuration
before any frame, and within each tick the far-end frame before the
near-end frame.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Optional

from .config import ProcessingConfig, ECHO_LIKELIHOOD_THRESHOLD
from .engine import ProcessingEngine, NlmsEngine
from .exceptions import ProcessingError
from .utils import StreamDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DebugMetricsSnapshot:
    """
    Engine metrics at one point of the run.

    Every metric is either a number or None when the engine could not
    provide it.
    """
    frame: Optional[int] = None
    echo_return_loss: Optional[float] = None
    echo_return_loss_enhancement: Optional[float] = None
    filter_delay_ms: Optional[int] = None
    residual_echo_likelihood: Optional[float] = None
    divergent_filter_fraction: Optional[float] = None

    @property
    def echo_detected(self) -> bool:
        return (self.residual_echo_likelihood is not None
                and self.residual_echo_likelihood > ECHO_LIKELIHOOD_THRESHOLD)

    def availability(self) -> str:
        """Compact Y/N summary of which metrics are present."""
        flags = [
            ('ERL', self.echo_return_loss),
            ('ERLE', self.echo_return_loss_enhancement),
            ('REL', self.residual_echo_likelihood),
            ('DFF', self.divergent_filter_fraction),
            ('Delay', self.filter_delay_ms),
        ]
        return " ".join(f"{name}={'Y' if value is not None else 'N'}" for name, value in flags)


class ProcessingAdapter:
    """
    Wraps a ProcessingEngine for the pipeline.

    Frames are transformed in place; the returned array is the same object
    that was passed in unless the engine chooses otherwise.
    """

    def __init__(self, engine: Optional[ProcessingEngine] = None):
        self.engine = engine if engine is not None else NlmsEngine()
        self.config: Optional[ProcessingConfig] = None
        self._frames_submitted = 0
        self._reference_pending = False

    @property
    def configured(self) -> bool:
        return self.config is not None

    def configure(self, config: ProcessingConfig) -> None:
        """
        Apply the feature configuration. Must be called exactly once, before
        the first frame.
        """
        if self.configured:
            raise ProcessingError("Engine already configured")
        if self._frames_submitted:
            raise ProcessingError("Engine must be configured before the first frame")

        self.engine.apply_config(config)
        self.config = config

        enabled = [name for name, on in config.feature_states().items() if on]
        logger.debug(f"Engine configured; enabled features: {', '.join(enabled) or 'none'}")

    def submit_reference(self, frame: np.ndarray, descriptor: StreamDescriptor) -> np.ndarray:
        """
        Pass a far-end frame through the engine's reverse-stream path.

        Args:
            frame: Far-end frame (int16, interleaved)
            descriptor: Far-end stream format

        Returns:
            The transformed frame
        """
        if not self.configured:
            raise ProcessingError("configure() must be called before submitting frames")

        self._frames_submitted += 1
        result = self.engine.process_reverse_stream(frame, descriptor)
        self._reference_pending = True
        return result

    def submit_primary(self, frame: np.ndarray, descriptor: StreamDescriptor) -> np.ndarray:
        """
        Pass a near-end frame through the engine's forward-stream path.

        The far-end frame of the same tick must have been submitted first.

        Args:
            frame: Near-end frame (int16, interleaved)
            descriptor: Near-end stream format

        Returns:
            The transformed frame
        """
        if not self._reference_pending:
            raise ProcessingError("Reference frame must be submitted before the primary frame")

        self._frames_submitted += 1
        result = self.engine.process_stream(frame, descriptor)
        self._reference_pending = False
        return result

    def statistics(self, frame_index: Optional[int] = None) -> DebugMetricsSnapshot:
        """Query the engine's accumulated metrics."""
        stats = self.engine.get_statistics()
        return DebugMetricsSnapshot(
            frame=frame_index,
            echo_return_loss=stats.echo_return_loss,
            echo_return_loss_enhancement=stats.echo_return_loss_enhancement,
            filter_delay_ms=stats.delay_ms,
            residual_echo_likelihood=stats.residual_echo_likelihood,
            divergent_filter_fraction=stats.divergent_filter_fraction
        )

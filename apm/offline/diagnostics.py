"""
Diagnostics Recording Module

Optional observer of the processing loop. When enabled it writes raw PCM
dumps of the far-end, near-end and processed signals, a per-frame
statistics log, a periodic engine-metrics log and a one-shot dump of the
engine configuration into ``<output prefix>_debug_dump/``.

When disabled, every method returns immediately.
"""

import os
import csv
import logging
import numpy as np
from typing import Optional, List

from .adapter import ProcessingAdapter, DebugMetricsSnapshot
from .config import (
    ProcessingConfig, METRICS_INTERVAL, PROGRESS_INTERVAL, DEBUG_DIR_SUFFIX
)
from .math_utils import frame_rms, frame_peak

logger = logging.getLogger(__name__)

PLAY_RAW_FILE = 'play_raw.pcm'
REC_RAW_FILE = 'rec_raw.pcm'
PROCESSED_RAW_FILE = 'processed_raw.pcm'
DEBUG_LOG_FILE = 'debug_log.txt'
ECHO_METRICS_FILE = 'echo_metrics.txt'
PROCESSING_CONFIG_FILE = 'processing_config.txt'

DEBUG_LOG_HEADER = ['Frame', 'Play_RMS', 'Rec_RMS', 'Processed_RMS',
                    'Play_Peak', 'Rec_Peak', 'Processed_Peak']
ECHO_METRICS_HEADER = ['Frame', 'ERL_dB', 'ERLE_dB', 'Filter_Delay_ms',
                       'Residual_Echo_Likelihood', 'Echo_Detected', 'AEC_Quality']

ABSENT = '-1'


def output_prefix_for(output_path: str) -> str:
    """Output path without its extension, e.g. out/aec.wav -> out/aec"""
    prefix, _ = os.path.splitext(output_path)
    return prefix


def _fmt_float(value: Optional[float]) -> str:
    return ABSENT if value is None else f"{value:.3f}"


def _fmt_int(value: Optional[int]) -> str:
    return ABSENT if value is None else str(int(value))


def metrics_row(snapshot: DebugMetricsSnapshot) -> List[str]:
    """Render a metrics snapshot as one echo_metrics.txt row."""
    return [
        _fmt_int(snapshot.frame),
        _fmt_float(snapshot.echo_return_loss),
        _fmt_float(snapshot.echo_return_loss_enhancement),
        _fmt_int(snapshot.filter_delay_ms),
        _fmt_float(snapshot.residual_echo_likelihood),
        '1' if snapshot.echo_detected else '0',
        _fmt_float(snapshot.divergent_filter_fraction),
    ]


class DiagnosticsRecorder:
    """
    Writes per-frame and periodic diagnostics for one pipeline run.

    Lifecycle is explicit: open() creates the directory and files, close()
    releases them. The recorder is also a context manager.
    """

    def __init__(self, enabled: bool, output_prefix: str,
                 metrics_interval: int = METRICS_INTERVAL,
                 progress_interval: int = PROGRESS_INTERVAL):
        """
        Args:
            enabled: Record anything at all
            output_prefix: Output path without extension; the dump directory
                           is output_prefix + "_debug_dump"
            metrics_interval: Query engine metrics every N frames
            progress_interval: Log progress every N frames
        """
        self.enabled = enabled
        self.debug_dir = output_prefix + DEBUG_DIR_SUFFIX
        self.metrics_interval = metrics_interval
        self.progress_interval = progress_interval

        self.frames_recorded = 0
        self.metrics_recorded = 0
        self._files = {}
        self._debug_log = None
        self._echo_metrics = None

    @property
    def is_open(self) -> bool:
        return bool(self._files)

    def open(self) -> bool:
        """
        Create the dump directory and files.

        Returns:
            True if the recorder is ready (or disabled), False if the files
            could not be created
        """
        if not self.enabled or self.is_open:
            return True

        try:
            os.makedirs(self.debug_dir, exist_ok=True)
            for name in (PLAY_RAW_FILE, REC_RAW_FILE, PROCESSED_RAW_FILE):
                self._files[name] = open(os.path.join(self.debug_dir, name), 'wb')
            for name in (DEBUG_LOG_FILE, ECHO_METRICS_FILE):
                self._files[name] = open(os.path.join(self.debug_dir, name), 'w', newline='')
        except OSError as e:
            logger.error(f"Cannot create debug dump in {self.debug_dir}: {e}")
            self.close()
            return False

        self._debug_log = csv.writer(self._files[DEBUG_LOG_FILE], lineterminator='\n')
        self._echo_metrics = csv.writer(self._files[ECHO_METRICS_FILE], lineterminator='\n')
        self._debug_log.writerow(DEBUG_LOG_HEADER)
        self._echo_metrics.writerow(ECHO_METRICS_HEADER)

        logger.debug(f"Data dump directory created: {self.debug_dir}")
        return True

    def close(self) -> None:
        if not self._files:
            return

        for f in self._files.values():
            f.close()
        self._files = {}
        self._debug_log = None
        self._echo_metrics = None

        logger.debug(f"Data dump completed. Total frames: {self.frames_recorded}")

    def __enter__(self) -> 'DiagnosticsRecorder':
        if not self.open():
            raise OSError(f"Cannot create debug dump in {self.debug_dir}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def log_config(self, config: ProcessingConfig) -> None:
        """Write processing_config.txt describing the engine feature set."""
        if not self.enabled:
            return

        lines = ["Audio Processing Configuration:"]
        for name, enabled in config.feature_states().items():
            lines.append(f"{name}: {'enabled' if enabled else 'disabled'}")
        if config.noise_suppression.enabled:
            lines.append(f"Noise Suppression Level: {config.noise_suppression.level.value}")

        with open(os.path.join(self.debug_dir, PROCESSING_CONFIG_FILE), 'w') as f:
            f.write("\n".join(lines) + "\n")

    def record_frame(self, play: np.ndarray, rec: np.ndarray, processed: np.ndarray) -> None:
        """
        Dump one tick's frames and append its statistics row.

        Args:
            play: Far-end frame
            rec: Near-end frame before processing
            processed: Near-end frame after processing
        """
        if not self.enabled or not self.is_open:
            return

        self.frames_recorded += 1

        self._files[PLAY_RAW_FILE].write(play.astype('<i2').tobytes())
        self._files[REC_RAW_FILE].write(rec.astype('<i2').tobytes())
        self._files[PROCESSED_RAW_FILE].write(processed.astype('<i2').tobytes())

        self._debug_log.writerow([
            self.frames_recorded,
            f"{frame_rms(play):.3f}",
            f"{frame_rms(rec):.3f}",
            f"{frame_rms(processed):.3f}",
            frame_peak(play),
            frame_peak(rec),
            frame_peak(processed),
        ])

        if self.frames_recorded % self.progress_interval == 0:
            logger.debug(f"Processed {self.frames_recorded} frames")

    def record_metrics(self, adapter: ProcessingAdapter) -> Optional[DebugMetricsSnapshot]:
        """
        Append an engine-metrics row on every metrics_interval-th frame.

        The metrics file is flushed after each row so an interrupted run
        still leaves a readable prefix.

        Returns:
            The recorded snapshot, or None if nothing was recorded
        """
        if not self.enabled or not self.is_open:
            return None
        if self.frames_recorded == 0 or self.frames_recorded % self.metrics_interval != 0:
            return None

        snapshot = adapter.statistics(self.frames_recorded)

        if self.frames_recorded % self.progress_interval == 0:
            logger.debug(f"Frame {self.frames_recorded} stats availability: {snapshot.availability()}")

        self._echo_metrics.writerow(metrics_row(snapshot))
        self._files[ECHO_METRICS_FILE].flush()
        self.metrics_recorded += 1
        return snapshot

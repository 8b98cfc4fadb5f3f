"""
Unit tests for the diagnostics recorder.

The recorder is exercised on its own, without the pipeline, using a
passthrough engine with scripted statistics.
"""

import os
import numpy as np
import pytest

from apm.offline.adapter import ProcessingAdapter, DebugMetricsSnapshot
from apm.offline.config import ProcessingConfig, NoiseSuppressionLevel
from apm.offline.diagnostics import (
    DiagnosticsRecorder, metrics_row, output_prefix_for,
    DEBUG_LOG_HEADER, ECHO_METRICS_HEADER
)
from apm.offline.engine import PassthroughEngine, EngineStatistics


class ScriptedEngine(PassthroughEngine):
    def __init__(self, stats):
        super().__init__()
        self.stats = stats

    def get_statistics(self):
        return self.stats


def _read_lines(path):
    with open(path) as f:
        return f.read().splitlines()


@pytest.fixture
def prefix(tmp_path):
    return str(tmp_path / "out")


class TestLifecycle:

    def test_disabled_is_noop(self, prefix):
        recorder = DiagnosticsRecorder(False, prefix)

        assert recorder.open() is True
        recorder.record_frame(np.zeros(4, np.int16), np.zeros(4, np.int16), np.zeros(4, np.int16))
        recorder.log_config(ProcessingConfig())
        assert recorder.record_metrics(ProcessingAdapter(PassthroughEngine())) is None
        recorder.close()

        assert not os.path.exists(recorder.debug_dir)
        assert recorder.frames_recorded == 0

    def test_open_creates_files(self, prefix):
        recorder = DiagnosticsRecorder(True, prefix)
        assert recorder.open() is True
        recorder.close()

        assert recorder.debug_dir == prefix + "_debug_dump"
        assert sorted(os.listdir(recorder.debug_dir)) == [
            'debug_log.txt', 'echo_metrics.txt', 'play_raw.pcm',
            'processed_raw.pcm', 'rec_raw.pcm'
        ]
        assert _read_lines(os.path.join(recorder.debug_dir, 'debug_log.txt')) == [",".join(DEBUG_LOG_HEADER)]
        assert _read_lines(os.path.join(recorder.debug_dir, 'echo_metrics.txt')) == [",".join(ECHO_METRICS_HEADER)]

    def test_open_failure_reported(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")
        recorder = DiagnosticsRecorder(True, str(blocker / "out"))

        assert recorder.open() is False
        assert not recorder.is_open

    def test_context_manager_closes(self, prefix):
        with DiagnosticsRecorder(True, prefix) as recorder:
            assert recorder.is_open
        assert not recorder.is_open

    def test_output_prefix_strips_extension(self):
        assert output_prefix_for(os.path.join("a", "aec.wav")) == os.path.join("a", "aec")
        assert output_prefix_for("aec") == "aec"


class TestRecording:

    def test_frame_rows_and_dumps(self, prefix):
        play = np.array([3, -4, 0, 0], dtype=np.int16)
        rec = np.array([-32768, 0, 0, 0], dtype=np.int16)
        processed = np.zeros(4, dtype=np.int16)

        with DiagnosticsRecorder(True, prefix) as recorder:
            for _ in range(3):
                recorder.record_frame(play, rec, processed)

        lines = _read_lines(os.path.join(recorder.debug_dir, 'debug_log.txt'))
        assert len(lines) == 4
        assert lines[1] == "1,2.500,16384.000,0.000,4,32768,0"
        assert lines[3].startswith("3,")

        with open(os.path.join(recorder.debug_dir, 'play_raw.pcm'), 'rb') as f:
            raw = f.read()
        assert np.array_equal(np.frombuffer(raw, dtype='<i2'), np.tile(play, 3))
        assert os.path.getsize(os.path.join(recorder.debug_dir, 'processed_raw.pcm')) == 3 * 8

    def test_metrics_every_tenth_frame(self, prefix):
        frame = np.ones(160, dtype=np.int16)
        adapter = ProcessingAdapter(ScriptedEngine(EngineStatistics()))
        snapshots = []

        with DiagnosticsRecorder(True, prefix) as recorder:
            for _ in range(25):
                recorder.record_frame(frame, frame, frame)
                snapshot = recorder.record_metrics(adapter)
                if snapshot is not None:
                    snapshots.append(snapshot)

        lines = _read_lines(os.path.join(recorder.debug_dir, 'echo_metrics.txt'))
        assert len(lines) == 1 + 2
        assert [s.frame for s in snapshots] == [10, 20]
        assert lines[1] == "10,-1,-1,-1,-1,0,-1"
        assert recorder.metrics_recorded == 2

    def test_metrics_flushed_while_open(self, prefix):
        frame = np.ones(160, dtype=np.int16)
        adapter = ProcessingAdapter(ScriptedEngine(EngineStatistics()))
        recorder = DiagnosticsRecorder(True, prefix, metrics_interval=1)
        recorder.open()
        try:
            recorder.record_frame(frame, frame, frame)
            recorder.record_metrics(adapter)
            lines = _read_lines(os.path.join(recorder.debug_dir, 'echo_metrics.txt'))
        finally:
            recorder.close()

        assert len(lines) == 2

    def test_log_config(self, prefix):
        config = ProcessingConfig()
        config.noise_suppression.enabled = True
        config.noise_suppression.level = NoiseSuppressionLevel.HIGH

        with DiagnosticsRecorder(True, prefix) as recorder:
            recorder.log_config(config)

        lines = _read_lines(os.path.join(recorder.debug_dir, 'processing_config.txt'))
        assert lines == [
            "Audio Processing Configuration:",
            "Echo Canceller: enabled",
            "Gain Controller 1: disabled",
            "Gain Controller 2: disabled",
            "High Pass Filter: disabled",
            "Noise Suppression: enabled",
            "Noise Suppression Level: 2",
        ]


class TestMetricsRow:

    def test_present_values(self):
        snapshot = DebugMetricsSnapshot(frame=30, echo_return_loss=6.02, echo_return_loss_enhancement=25.5,
                                        filter_delay_ms=12, residual_echo_likelihood=0.75,
                                        divergent_filter_fraction=0.0)
        assert metrics_row(snapshot) == ['30', '6.020', '25.500', '12', '0.750', '1', '0.000']

    def test_negative_value_is_not_absent(self):
        """A genuine negative ERL is written as a number."""
        snapshot = DebugMetricsSnapshot(frame=10, echo_return_loss=-1.0)
        assert metrics_row(snapshot)[1] == '-1.000'

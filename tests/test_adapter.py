"""
Unit tests for the processing adapter and metrics snapshots.
"""

import pytest
import numpy as np

from apm.offline.adapter import ProcessingAdapter, DebugMetricsSnapshot
from apm.offline.config import ProcessingConfig
from apm.offline.engine import PassthroughEngine, NlmsEngine, EngineStatistics
from apm.offline.exceptions import ProcessingError
from apm.offline.utils import StreamDescriptor

MONO_16K = StreamDescriptor(16000, 1)


class RecordingEngine(PassthroughEngine):
    """Passthrough engine that remembers the order of calls."""

    def __init__(self, stats=None):
        super().__init__()
        self.calls = []
        self.stats = stats or EngineStatistics()

    def apply_config(self, config):
        self.calls.append('config')
        super().apply_config(config)

    def process_reverse_stream(self, frame, descriptor):
        self.calls.append(('reverse', descriptor))
        return frame

    def process_stream(self, frame, descriptor):
        self.calls.append(('forward', descriptor))
        frame[:] = frame // 2
        return frame

    def get_statistics(self):
        return self.stats


@pytest.fixture
def frame():
    return np.full(160, 1000, dtype=np.int16)


class TestProcessingAdapter:

    def test_default_engine(self):
        assert isinstance(ProcessingAdapter().engine, NlmsEngine)

    def test_configure_once(self):
        adapter = ProcessingAdapter(RecordingEngine())
        adapter.configure(ProcessingConfig())

        with pytest.raises(ProcessingError, match="already configured"):
            adapter.configure(ProcessingConfig())

    def test_frames_require_configuration(self, frame):
        adapter = ProcessingAdapter(RecordingEngine())
        with pytest.raises(ProcessingError, match="configure"):
            adapter.submit_reference(frame, MONO_16K)

    def test_primary_requires_reference(self, frame):
        adapter = ProcessingAdapter(RecordingEngine())
        adapter.configure(ProcessingConfig())

        with pytest.raises(ProcessingError, match="Reference"):
            adapter.submit_primary(frame, MONO_16K)

    def test_reference_needed_every_tick(self, frame):
        adapter = ProcessingAdapter(RecordingEngine())
        adapter.configure(ProcessingConfig())
        adapter.submit_reference(frame.copy(), MONO_16K)
        adapter.submit_primary(frame.copy(), MONO_16K)

        with pytest.raises(ProcessingError):
            adapter.submit_primary(frame.copy(), MONO_16K)

    def test_call_order_and_descriptors(self, frame):
        """Each stream is described by its own descriptor."""
        engine = RecordingEngine()
        adapter = ProcessingAdapter(engine)
        play_desc = StreamDescriptor(48000, 2)
        adapter.configure(ProcessingConfig())

        adapter.submit_reference(np.zeros(960, dtype=np.int16), play_desc)
        result = adapter.submit_primary(frame, MONO_16K)

        assert engine.calls == ['config', ('reverse', play_desc), ('forward', MONO_16K)]
        assert result is frame
        assert np.all(frame == 500)

    def test_statistics_with_absent_values(self):
        adapter = ProcessingAdapter(RecordingEngine())
        snapshot = adapter.statistics(10)

        assert snapshot.frame == 10
        assert snapshot.echo_return_loss is None
        assert snapshot.filter_delay_ms is None
        assert snapshot.echo_detected is False

    def test_statistics_mapping(self):
        stats = EngineStatistics(echo_return_loss=12.5, echo_return_loss_enhancement=20.0,
                                 delay_ms=40, residual_echo_likelihood=0.7,
                                 divergent_filter_fraction=0.0)
        snapshot = ProcessingAdapter(RecordingEngine(stats)).statistics(20)

        assert snapshot.echo_return_loss == 12.5
        assert snapshot.echo_return_loss_enhancement == 20.0
        assert snapshot.filter_delay_ms == 40
        assert snapshot.divergent_filter_fraction == 0.0
        assert snapshot.echo_detected is True


class TestDebugMetricsSnapshot:

    @pytest.mark.parametrize("likelihood, detected", [
        (None, False),
        (0.0, False),
        (0.5, False),
        (0.51, True),
        (1.0, True),
    ])
    def test_echo_detected(self, likelihood, detected):
        assert DebugMetricsSnapshot(residual_echo_likelihood=likelihood).echo_detected is detected

    def test_zero_values_are_present(self):
        """Zero is a legitimate metric value, distinct from absent."""
        snapshot = DebugMetricsSnapshot(echo_return_loss=0.0, filter_delay_ms=0)
        assert snapshot.availability().startswith("ERL=Y ERLE=N")
        assert "Delay=Y" in snapshot.availability()

"""
Unit tests for the configuration module.
"""

import pytest

from apm.offline.config import (
    PipelineConfig, ProcessingConfig, GainController1Config, HighPassFilterConfig,
    GainControllerMode, NoiseSuppressionLevel, DEFAULT_BLOCK_MS
)
from apm.offline.exceptions import ConfigurationError


class TestProcessingConfig:

    def test_defaults(self):
        """Echo cancellation on, everything else off."""
        config = ProcessingConfig()

        assert config.feature_states() == {
            'Echo Canceller': True,
            'Gain Controller 1': False,
            'Gain Controller 2': False,
            'High Pass Filter': False,
            'Noise Suppression': False,
        }
        assert config.gain_controller1.mode is GainControllerMode.ADAPTIVE_DIGITAL
        assert config.noise_suppression.level is NoiseSuppressionLevel.HIGH

    def test_dict_roundtrip_restores_enums(self):
        config = ProcessingConfig()
        config.noise_suppression.enabled = True
        config.noise_suppression.level = NoiseSuppressionLevel.VERY_HIGH

        restored = ProcessingConfig.from_dict(config.to_dict())

        assert restored == config
        assert restored.noise_suppression.level is NoiseSuppressionLevel.VERY_HIGH

    def test_invalid_values(self):
        with pytest.raises(ConfigurationError):
            GainController1Config(target_level_dbfs=40)
        with pytest.raises(ConfigurationError):
            HighPassFilterConfig(cutoff_hz=0)


class TestPipelineConfig:

    def test_defaults(self):
        config = PipelineConfig()
        assert config.block_ms == DEFAULT_BLOCK_MS == 10
        assert config.metrics_interval == 10

    @pytest.mark.parametrize("kwargs", [
        {'block_ms': 0},
        {'metrics_interval': 0},
        {'progress_interval': -1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            PipelineConfig(**kwargs)

    def test_save_and_load(self, tmp_path):
        config = PipelineConfig(block_ms=20)
        config.processing.high_pass_filter.enabled = True
        path = str(tmp_path / "config.json")

        config.save(path)

        assert PipelineConfig.load(path) == config

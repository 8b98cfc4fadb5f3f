"""
Configuration Management Module

This module provides centralized configuration management for the offline
processing pipeline, including constants, the engine feature set and
pipeline settings.
"""

from typing import Dict, Any
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import ConfigurationError


# =====================================================================================
# Constants
# =====================================================================================

# Framing
DEFAULT_BLOCK_MS = 10  # ms per scheduling tick
DEFAULT_SAMPLE_RATE = 16000  # Hz
DEFAULT_CHANNELS = 1

# Container format
WAV_HEADER_SIZE = 44  # bytes, canonical layout
PCM_FORMAT_CODE = 1
BITS_PER_SAMPLE = 16
FMT_CHUNK_SIZE = 16
MAX_DATA_SIZE = 0xFFFFFFFF - 36  # file_size field is a u32

# Diagnostics
METRICS_INTERVAL = 10  # frames between engine statistics queries
PROGRESS_INTERVAL = 100  # frames between progress log lines
ECHO_LIKELIHOOD_THRESHOLD = 0.5
DEBUG_DIR_SUFFIX = "_debug_dump"


# =====================================================================================
# Enumerations
# =====================================================================================

class GainControllerMode(Enum):
    """Operating modes of the first-generation gain controller."""
    ADAPTIVE_ANALOG = 0
    ADAPTIVE_DIGITAL = 1
    FIXED_DIGITAL = 2


class NoiseSuppressionLevel(Enum):
    """Aggressiveness of noise suppression."""
    LOW = 0
    MODERATE = 1
    HIGH = 2
    VERY_HIGH = 3


# =====================================================================================
# Configuration Classes
# =====================================================================================

@dataclass
class EchoCancellerConfig:
    """Acoustic echo canceller settings"""
    enabled: bool = True


@dataclass
class GainController1Config:
    """First-generation automatic gain control"""
    enabled: bool = False
    mode: GainControllerMode = GainControllerMode.ADAPTIVE_DIGITAL
    target_level_dbfs: int = 3  # dB below full scale

    def __post_init__(self):
        """Validate configuration after initialization"""
        if isinstance(self.mode, int):
            self.mode = GainControllerMode(self.mode)
        if not 0 <= self.target_level_dbfs <= 31:
            raise ConfigurationError("Target level must be between 0 and 31 dBFS")


@dataclass
class GainController2Config:
    """Second-generation automatic gain control"""
    enabled: bool = False
    adaptive_digital: bool = False


@dataclass
class HighPassFilterConfig:
    """DC and low-frequency rumble removal"""
    enabled: bool = False
    cutoff_hz: float = 80.0

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.cutoff_hz <= 0:
            raise ConfigurationError("High-pass cutoff must be positive")


@dataclass
class NoiseSuppressionConfig:
    """Stationary noise suppression"""
    enabled: bool = False
    level: NoiseSuppressionLevel = NoiseSuppressionLevel.HIGH

    def __post_init__(self):
        """Validate configuration after initialization"""
        if isinstance(self.level, int):
            self.level = NoiseSuppressionLevel(self.level)


@dataclass
class ProcessingConfig:
    """Feature set applied to the processing engine before the first frame"""

    echo_canceller: EchoCancellerConfig = field(default_factory=EchoCancellerConfig)
    gain_controller1: GainController1Config = field(default_factory=GainController1Config)
    gain_controller2: GainController2Config = field(default_factory=GainController2Config)
    high_pass_filter: HighPassFilterConfig = field(default_factory=HighPassFilterConfig)
    noise_suppression: NoiseSuppressionConfig = field(default_factory=NoiseSuppressionConfig)

    def feature_states(self) -> Dict[str, bool]:
        """Return enabled/disabled state of each feature, keyed by display name"""
        return {
            'Echo Canceller': self.echo_canceller.enabled,
            'Gain Controller 1': self.gain_controller1.enabled,
            'Gain Controller 2': self.gain_controller2.enabled,
            'High Pass Filter': self.high_pass_filter.enabled,
            'Noise Suppression': self.noise_suppression.enabled,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization"""
        return {
            'echo_canceller': {
                'enabled': self.echo_canceller.enabled
            },
            'gain_controller1': {
                'enabled': self.gain_controller1.enabled,
                'mode': self.gain_controller1.mode.value,
                'target_level_dbfs': self.gain_controller1.target_level_dbfs
            },
            'gain_controller2': {
                'enabled': self.gain_controller2.enabled,
                'adaptive_digital': self.gain_controller2.adaptive_digital
            },
            'high_pass_filter': {
                'enabled': self.high_pass_filter.enabled,
                'cutoff_hz': self.high_pass_filter.cutoff_hz
            },
            'noise_suppression': {
                'enabled': self.noise_suppression.enabled,
                'level': self.noise_suppression.level.value
            }
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ProcessingConfig':
        """Create configuration from dictionary"""
        return cls(
            echo_canceller=EchoCancellerConfig(**config_dict.get('echo_canceller', {})),
            gain_controller1=GainController1Config(**config_dict.get('gain_controller1', {})),
            gain_controller2=GainController2Config(**config_dict.get('gain_controller2', {})),
            high_pass_filter=HighPassFilterConfig(**config_dict.get('high_pass_filter', {})),
            noise_suppression=NoiseSuppressionConfig(**config_dict.get('noise_suppression', {}))
        )


@dataclass
class PipelineConfig:
    """Complete configuration for one offline run"""

    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    block_ms: int = DEFAULT_BLOCK_MS

    # Diagnostics settings
    metrics_interval: int = METRICS_INTERVAL
    progress_interval: int = PROGRESS_INTERVAL

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.block_ms <= 0:
            raise ConfigurationError("Block duration must be positive")

        if self.metrics_interval < 1:
            raise ConfigurationError("Metrics interval must be at least 1 frame")

        if self.progress_interval < 1:
            raise ConfigurationError("Progress interval must be at least 1 frame")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization"""
        return {
            'processing': self.processing.to_dict(),
            'block_ms': self.block_ms,
            'metrics_interval': self.metrics_interval,
            'progress_interval': self.progress_interval
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PipelineConfig':
        """Create configuration from dictionary"""
        return cls(
            processing=ProcessingConfig.from_dict(config_dict.get('processing', {})),
            block_ms=config_dict.get('block_ms', DEFAULT_BLOCK_MS),
            metrics_interval=config_dict.get('metrics_interval', METRICS_INTERVAL),
            progress_interval=config_dict.get('progress_interval', PROGRESS_INTERVAL)
        )

    def save(self, file_path: str) -> None:
        """Save configuration to file"""
        import json
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, file_path: str) -> 'PipelineConfig':
        """Load configuration from file"""
        import json
        with open(file_path, 'r') as f:
            return cls.from_dict(json.load(f))

"""
Offline Audio Processing Pipeline (apm.offline)

Runs a far-end/near-end WAV file pair through an acoustic echo
cancellation engine in fixed 10 ms frames and writes the processed
near-end signal as a canonical 16-bit PCM WAV file.
"""

from .adapter import ProcessingAdapter, DebugMetricsSnapshot
from .config import PipelineConfig, ProcessingConfig
from .engine import ProcessingEngine, PassthroughEngine, NlmsEngine, EngineStatistics
from .framing import frame_length, next_frame_pair, iter_frame_pairs
from .io import read_header, write_header, patch_data_size
from .pipeline import OfflinePipeline, PipelineResult, process_files, main
from .utils import StreamDescriptor

__version__ = '0.1.0'

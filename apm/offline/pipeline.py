"""
Offline Processing Pipeline Module

This module drives one offline pass over a far-end (reference) and a
near-end (microphone) WAV file: it validates both headers, configures the
processing engine, feeds synchronized frame pairs through it, writes the
processed near-end frames to the output WAV file and finally patches the
output header with the true data size.

It also provides the ``apm-offline`` command-line entry point.
"""

import sys
import logging
import argparse
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, List, BinaryIO

from .adapter import ProcessingAdapter
from .config import PipelineConfig
from .diagnostics import (
    DiagnosticsRecorder, output_prefix_for, PLAY_RAW_FILE, REC_RAW_FILE,
    PROCESSED_RAW_FILE, DEBUG_LOG_FILE, ECHO_METRICS_FILE, PROCESSING_CONFIG_FILE
)
from .engine import ProcessingEngine
from .exceptions import APMError, UsageError, FileOpenError, FormatError, IOError
from .framing import frame_length, check_alignment, iter_frame_pairs
from .io import read_header, write_header, patch_data_size
from .utils import StreamDescriptor

# Set up logging
logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """Lifecycle of a pipeline run."""
    INIT = auto()
    VALIDATING_HEADERS = auto()
    CONFIGURING = auto()
    LOOPING = auto()
    FINALIZING = auto()
    DONE = auto()
    FAILED = auto()


@dataclass
class ProcessingSession:
    """Aggregate state of one run."""

    play: StreamDescriptor
    rec: StreamDescriptor
    out: StreamDescriptor
    play_frame_len: int
    rec_frame_len: int
    frames_processed: int = 0
    bytes_written: int = 0

    @property
    def samples_processed(self) -> int:
        """Per-channel sample count written to the output"""
        return self.bytes_written // self.out.block_align


@dataclass
class PipelineResult:
    """Summary of a completed run."""

    output_path: str
    frames_processed: int
    samples_processed: int
    data_size: int
    debug_dir: Optional[str] = None


class OfflinePipeline:
    """
    Read/process/write driver for one far-end/near-end file pair.

    The output file inherits the near-end stream format.
    """

    def __init__(self, farend_path: str, nearend_path: str, output_path: str,
                 config: Optional[PipelineConfig] = None,
                 engine: Optional[ProcessingEngine] = None,
                 debug: bool = False):
        """
        Initialize the pipeline.

        Args:
            farend_path: Far-end (loudspeaker reference) WAV file
            nearend_path: Near-end (microphone) WAV file
            output_path: Processed WAV file to create
            config: Pipeline configuration (defaults if None)
            engine: Processing engine (NlmsEngine if None)
            debug: Record diagnostics next to the output file
        """
        self.farend_path = farend_path
        self.nearend_path = nearend_path
        self.output_path = output_path
        self.config = config if config is not None else PipelineConfig()
        self.adapter = ProcessingAdapter(engine)
        self.recorder = DiagnosticsRecorder(
            debug, output_prefix_for(output_path),
            metrics_interval=self.config.metrics_interval,
            progress_interval=self.config.progress_interval
        )
        self.state = PipelineState.INIT
        self.session: Optional[ProcessingSession] = None

    def run(self) -> PipelineResult:
        """
        Execute the run.

        Returns:
            PipelineResult describing the written output

        Raises:
            FileOpenError: An input or output file cannot be opened
            FormatError: An input header is not canonical 16-bit PCM
            IOError: An input header is truncated
        """
        try:
            with ExitStack() as stack:
                play_file, rec_file, out_file = self._open_files(stack)

                self.state = PipelineState.VALIDATING_HEADERS
                session = self._validate_headers(play_file, rec_file)
                self.session = session

                self.state = PipelineState.CONFIGURING
                header_offset = out_file.tell()
                write_header(out_file, session.out, 0)
                self._configure(stack)

                self.state = PipelineState.LOOPING
                logger.info("Starting audio processing...")
                self._loop(play_file, rec_file, out_file, session)

                self.state = PipelineState.FINALIZING
                patch_data_size(out_file, header_offset, session.out, session.bytes_written)
        except (APMError, OSError):
            self.state = PipelineState.FAILED
            raise

        self.state = PipelineState.DONE
        return self._report(session)

    def _open_files(self, stack: ExitStack) -> List[BinaryIO]:
        files = []
        for role, path, mode in (('play', self.farend_path, 'rb'),
                                 ('rec', self.nearend_path, 'rb'),
                                 ('output', self.output_path, 'wb')):
            try:
                files.append(stack.enter_context(open(path, mode)))
            except OSError as e:
                raise FileOpenError(role, path, e.strerror or str(e)) from e
        return files

    def _validate_headers(self, play_file: BinaryIO, rec_file: BinaryIO) -> ProcessingSession:
        play, _ = self._read_input_header('play', self.farend_path, play_file)
        rec, _ = self._read_input_header('rec', self.nearend_path, rec_file)

        logger.info(f"Play file: {play}")
        logger.info(f"Rec file: {rec}")

        block_ms = self.config.block_ms
        check_alignment(play, rec, block_ms)

        return ProcessingSession(
            play=play,
            rec=rec,
            out=StreamDescriptor(rec.sample_rate, rec.channels),
            play_frame_len=frame_length(play, block_ms),
            rec_frame_len=frame_length(rec, block_ms)
        )

    @staticmethod
    def _read_input_header(role: str, path: str, stream: BinaryIO):
        try:
            descriptor, payload_offset = read_header(stream)
        except (FormatError, IOError) as e:
            raise type(e)(f"Cannot read {role} file WAV header ({path}): {e}") from e
        logger.debug(f"{role} payload starts at byte {payload_offset}")
        return descriptor, payload_offset

    def _configure(self, stack: ExitStack) -> None:
        processing = self.config.processing
        self.adapter.configure(processing)

        if self.recorder.enabled:
            if self.recorder.open():
                stack.callback(self.recorder.close)
                self.recorder.log_config(processing)
            else:
                logger.warning("Continuing without diagnostics")

    def _loop(self, play_file: BinaryIO, rec_file: BinaryIO, out_file: BinaryIO,
              session: ProcessingSession) -> None:
        for play_frame, rec_frame in iter_frame_pairs(play_file, rec_file,
                                                      session.play_frame_len,
                                                      session.rec_frame_len):
            # Keep the unprocessed near-end frame for diagnostics
            processed = rec_frame.copy()

            self.adapter.submit_reference(play_frame, session.play)
            processed = self.adapter.submit_primary(processed, session.rec)

            out_file.write(processed.astype('<i2').tobytes())
            session.frames_processed += 1
            session.bytes_written += processed.size * session.out.bytes_per_sample

            self.recorder.record_frame(play_frame, rec_frame, processed)
            self.recorder.record_metrics(self.adapter)

    def _report(self, session: ProcessingSession) -> PipelineResult:
        debug_dir = self.recorder.debug_dir if self.recorder.enabled else None

        logger.info(f"Processing complete. Output written to {self.output_path}")
        logger.info(f"Processed {session.samples_processed} samples")

        if debug_dir is not None:
            logger.info(f"Debug data saved to {debug_dir}/")
            for name in (PLAY_RAW_FILE, REC_RAW_FILE, PROCESSED_RAW_FILE,
                         DEBUG_LOG_FILE, ECHO_METRICS_FILE, PROCESSING_CONFIG_FILE):
                logger.debug(f"  - {name}")

        return PipelineResult(
            output_path=self.output_path,
            frames_processed=session.frames_processed,
            samples_processed=session.samples_processed,
            data_size=session.bytes_written,
            debug_dir=debug_dir
        )


def process_files(farend_path: str, nearend_path: str, output_path: str,
                  config: Optional[PipelineConfig] = None,
                  engine: Optional[ProcessingEngine] = None,
                  debug: bool = False) -> PipelineResult:
    """
    Run the offline pipeline over one file pair.

    Args:
        farend_path: Far-end (reference) WAV file
        nearend_path: Near-end (microphone) WAV file
        output_path: Processed WAV file to create
        config: Pipeline configuration
        engine: Processing engine
        debug: Record diagnostics

    Returns:
        PipelineResult for the run
    """
    pipeline = OfflinePipeline(farend_path, nearend_path, output_path,
                               config=config, engine=engine, debug=debug)
    return pipeline.run()


# Utility functions for command-line use

class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors as UsageError."""

    def error(self, message):
        raise UsageError(message)


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    parser = _ArgumentParser(
        prog='apm-offline',
        description='Offline echo cancellation of a near-end recording against a far-end reference',
        allow_abbrev=False
    )

    parser.add_argument('farend', help='Far-end (loudspeaker) WAV file')
    parser.add_argument('nearend', help='Near-end (microphone) WAV file')
    parser.add_argument('output', help='Processed output WAV file')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug mode with data dumping')

    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Configure logging
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                       format='%(asctime)s - %(levelname)s - %(message)s')

    if args.debug:
        logger.debug("Debug mode enabled")

    try:
        process_files(args.farend, args.nearend, args.output, debug=args.debug)
    except (APMError, OSError) as e:
        logger.error(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

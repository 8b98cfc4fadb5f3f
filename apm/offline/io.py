"""
WAV Container I/O Module

This module reads and writes the canonical 44-byte RIFF/WAVE header used
for uncompressed 16-bit PCM, locates the data payload when other chunks
sit between the format chunk and the data chunk, and patches the data
size of an already written header once the final size is known.
"""

import struct
import os
import logging
from dataclasses import dataclass
from typing import BinaryIO, Tuple

from .config import (
    WAV_HEADER_SIZE, PCM_FORMAT_CODE, BITS_PER_SAMPLE,
    FMT_CHUNK_SIZE, MAX_DATA_SIZE
)
from .exceptions import FormatError, IOError
from .utils import StreamDescriptor

logger = logging.getLogger(__name__)

# riff, file_size, wave, fmt, fmt_size, audio_format, num_channels,
# sample_rate, byte_rate, block_align, bits_per_sample, data, data_size
HEADER_STRUCT = struct.Struct('<4sI4s4sIHHIIHH4sI')
CHUNK_STRUCT = struct.Struct('<4sI')

# Offset of the first byte of the format chunk body
FMT_BODY_OFFSET = 20

assert HEADER_STRUCT.size == WAV_HEADER_SIZE


@dataclass(frozen=True)
class ContainerHeader:
    """Canonical fixed-layout WAV header record"""

    riff: bytes
    file_size: int
    wave: bytes
    fmt: bytes
    fmt_size: int
    audio_format: int
    num_channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data: bytes
    data_size: int

    @classmethod
    def unpack(cls, raw: bytes) -> 'ContainerHeader':
        """Parse 44 raw bytes without validating them."""
        return cls(*HEADER_STRUCT.unpack(raw))

    @classmethod
    def for_stream(cls, descriptor: StreamDescriptor, data_size: int) -> 'ContainerHeader':
        """Build the canonical header for a stream carrying data_size payload bytes."""
        if data_size < 0 or data_size > MAX_DATA_SIZE:
            raise FormatError(f"Data size {data_size} does not fit a RIFF container")

        return cls(
            riff=b'RIFF',
            file_size=36 + data_size,
            wave=b'WAVE',
            fmt=b'fmt ',
            fmt_size=FMT_CHUNK_SIZE,
            audio_format=PCM_FORMAT_CODE,
            num_channels=descriptor.channels,
            sample_rate=descriptor.sample_rate,
            byte_rate=descriptor.sample_rate * descriptor.channels * BITS_PER_SAMPLE // 8,
            block_align=descriptor.channels * BITS_PER_SAMPLE // 8,
            bits_per_sample=BITS_PER_SAMPLE,
            data=b'data',
            data_size=data_size
        )

    def pack(self) -> bytes:
        return HEADER_STRUCT.pack(
            self.riff, self.file_size, self.wave, self.fmt, self.fmt_size,
            self.audio_format, self.num_channels, self.sample_rate,
            self.byte_rate, self.block_align, self.bits_per_sample,
            self.data, self.data_size
        )

    def validate(self) -> None:
        """
        Check the invariants every further processing step relies on.

        Raises:
            FormatError: naming the first violated expectation
        """
        if self.riff != b'RIFF':
            raise FormatError("Not a valid RIFF file")

        if self.wave != b'WAVE':
            raise FormatError("Not a WAVE file")

        if self.fmt != b'fmt ':
            raise FormatError("fmt chunk not found")

        if self.audio_format != PCM_FORMAT_CODE:
            raise FormatError(f"Only PCM format supported (format code {self.audio_format})")

        if self.bits_per_sample != BITS_PER_SAMPLE:
            raise FormatError(f"Only 16-bit samples supported (got {self.bits_per_sample})")

    @property
    def has_contiguous_data(self) -> bool:
        """True when the data chunk immediately follows a 16-byte format chunk"""
        return self.data == b'data'

    def descriptor(self) -> StreamDescriptor:
        return StreamDescriptor(self.sample_rate, self.num_channels, self.bits_per_sample)


def _looks_like_chunk_id(tag: bytes) -> bool:
    return len(tag) == 4 and all(0x20 <= b < 0x7f for b in tag)


def _skip_pad_byte(stream: BinaryIO) -> None:
    """
    Step over the pad byte after an odd-sized chunk.

    Some writers omit the pad byte. When no chunk id follows the padded
    position but one starts right at the unpadded position, the stream is
    left there instead.
    """
    position = stream.tell()
    stream.seek(position + 1, os.SEEK_SET)
    if _looks_like_chunk_id(stream.read(4)):
        stream.seek(position + 1, os.SEEK_SET)
        return

    stream.seek(position, os.SEEK_SET)
    if _looks_like_chunk_id(stream.read(4)):
        logger.debug("Odd-sized chunk has no pad byte")
        stream.seek(position, os.SEEK_SET)
        return

    stream.seek(position + 1, os.SEEK_SET)


def _skip_to_data_chunk(stream: BinaryIO, fmt_size: int) -> int:
    """
    Walk the chunk list after the format chunk until the data chunk.

    Args:
        stream: Input stream positioned anywhere
        fmt_size: Declared size of the format chunk body

    Returns:
        Size of the data chunk; the stream is left at its first payload byte
    """
    stream.seek(FMT_BODY_OFFSET + fmt_size + (fmt_size & 1), os.SEEK_SET)

    while True:
        raw = stream.read(CHUNK_STRUCT.size)
        if len(raw) < CHUNK_STRUCT.size:
            raise FormatError("data chunk not found")

        chunk_id, chunk_size = CHUNK_STRUCT.unpack(raw)
        if chunk_id == b'data':
            return chunk_size

        logger.debug(f"Skipping {chunk_id!r} chunk ({chunk_size} bytes)")
        stream.seek(chunk_size, os.SEEK_CUR)
        # RIFF chunks are word aligned
        if chunk_size & 1:
            _skip_pad_byte(stream)


def read_container_header(stream: BinaryIO) -> Tuple[ContainerHeader, int]:
    """
    Read and validate a WAV header, locating the data payload.

    Args:
        stream: Binary input stream positioned at the start of the file

    Returns:
        Tuple of (header, payload_offset). When the data chunk was found by
        walking the chunk list, header.data and header.data_size describe
        the located chunk.
    """
    raw = stream.read(WAV_HEADER_SIZE)
    if len(raw) != WAV_HEADER_SIZE:
        raise IOError(f"Could not read WAV header ({len(raw)} of {WAV_HEADER_SIZE} bytes)")

    header = ContainerHeader.unpack(raw)
    header.validate()

    if header.has_contiguous_data:
        return header, WAV_HEADER_SIZE

    data_size = _skip_to_data_chunk(stream, header.fmt_size)
    header = ContainerHeader(
        header.riff, header.file_size, header.wave, header.fmt, header.fmt_size,
        header.audio_format, header.num_channels, header.sample_rate,
        header.byte_rate, header.block_align, header.bits_per_sample,
        b'data', data_size
    )
    return header, stream.tell()


def read_header(stream: BinaryIO) -> Tuple[StreamDescriptor, int]:
    """
    Read a WAV header and return the stream format and payload offset.

    The stream is left positioned at the first payload byte.

    Raises:
        IOError: Fewer than 44 header bytes available
        FormatError: Tag, format code or bit depth mismatch, or no data chunk
    """
    header, payload_offset = read_container_header(stream)
    return header.descriptor(), payload_offset


def write_header(stream: BinaryIO, descriptor: StreamDescriptor, data_size: int) -> None:
    """
    Write the canonical 44-byte header at the current stream position.

    Args:
        stream: Binary output stream
        descriptor: Format of the payload
        data_size: Payload size in bytes
    """
    stream.write(ContainerHeader.for_stream(descriptor, data_size).pack())


def patch_data_size(stream: BinaryIO, header_offset: int,
                    descriptor: StreamDescriptor, final_data_size: int) -> None:
    """
    Rewrite a previously written header with the final payload size.

    The write position in effect before the call is restored afterwards.

    Args:
        stream: Seekable binary output stream
        header_offset: Position at which the header was written
        descriptor: Format of the payload
        final_data_size: Payload size in bytes
    """
    if not stream.seekable():
        raise IOError("Output stream is not seekable; cannot patch WAV header")

    header = ContainerHeader.for_stream(descriptor, final_data_size).pack()
    current_pos = stream.tell()
    stream.seek(header_offset, os.SEEK_SET)
    try:
        stream.write(header)
    finally:
        stream.seek(current_pos, os.SEEK_SET)

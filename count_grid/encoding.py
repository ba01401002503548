from typing import NamedTuple

import numpy as np
import logging

logger = logging.getLogger(__name__)

HEADER_SIZE = 5  # ints

INT32 = np.iinfo(np.int32)
WIRE_DTYPE = np.dtype("<i4")


class GridHeader(NamedTuple):
    zoom: int
    west: int
    north: int
    width: int
    height: int


def delta_encode(values):
    """Successive differences, with an implicit 0 before the first value."""
    values = np.asarray(values, dtype=np.int64)
    return np.diff(values, prepend=0)


def delta_decode(deltas):
    """Inverse of `delta_encode`: prefix sum seeded at 0."""
    return np.cumsum(np.asarray(deltas, dtype=np.int64))


def check_int32(values, what):
    values = np.asarray(values)
    if values.size and (values.min() < INT32.min or values.max() > INT32.max):
        raise OverflowError(f"{what} does not fit in a signed 32-bit integer")


def pack_grid(header, raw):
    """
    Build the int32 buffer [zoom, west, north, width, height, deltas...]
    from a header and a row-major array of raw cell counts.
    """
    header = GridHeader(*header)
    if header.width * header.height != np.size(raw):
        raise ValueError(
            f"Grid body has {np.size(raw)} cells, header says {header.width}x{header.height}"
        )
    check_int32(header, "Grid header")

    body = delta_encode(np.ravel(raw))
    check_int32(body, "Delta-coded grid cell")

    out = np.empty(HEADER_SIZE + body.size, dtype=np.int32)
    out[:HEADER_SIZE] = header
    out[HEADER_SIZE:] = body
    return out


def read_header(buffer) -> GridHeader:
    buffer = np.asarray(buffer)
    if buffer.size < HEADER_SIZE:
        raise ValueError(f"Grid buffer has {buffer.size} ints, header needs {HEADER_SIZE}")
    header = GridHeader(*(int(v) for v in buffer[:HEADER_SIZE]))
    if header.width < 0 or header.height < 0:
        raise ValueError(f"Negative grid size {header.width}x{header.height}")
    expected = HEADER_SIZE + header.width * header.height
    if buffer.size != expected:
        raise ValueError(f"Grid buffer has {buffer.size} ints, expected {expected}")
    return header


# ---------------------------------------------------------------------------
# SERIALIZATION
# ---------------------------------------------------------------------------

def to_bytes(buffer) -> bytes:
    buffer = np.asarray(buffer)
    read_header(buffer)
    return buffer.astype(WIRE_DTYPE).tobytes()


def from_bytes(data) -> np.ndarray:
    if len(data) % WIRE_DTYPE.itemsize:
        raise ValueError(f"Grid data length {len(data)} is not a multiple of 4 bytes")
    buffer = np.frombuffer(data, dtype=WIRE_DTYPE).astype(np.int32)
    read_header(buffer)
    return buffer


class GridLoader:
    """Decodes a delta-coded grid buffer (int32 array or raw bytes) back into counts."""

    def __init__(self, source):
        self.source = source
        self.header = None
        self.counts = None

    def load(self):
        buffer = self.source
        if isinstance(buffer, (bytes, bytearray, memoryview)):
            buffer = from_bytes(buffer)
        buffer = np.asarray(buffer)

        self.header = read_header(buffer)
        logger.debug("Decoding grid %s", self.header)
        raw = delta_decode(buffer[HEADER_SIZE:])
        self.counts = raw.reshape(self.header.height, self.header.width)
        return self.header, self.counts

    def value_at(self, x, y):
        """Raw count at absolute pixel (x, y); 0 outside the grid."""
        if self.counts is None:
            self.load()
        h = self.header
        col = x - h.west
        row = y - h.north
        if 0 <= row < h.height and 0 <= col < h.width:
            return int(self.counts[row, col])
        return 0

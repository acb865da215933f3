"""Reading and writing of tagged binary chunks.

A chunk is a four byte magic tag, a little-endian 32-bit byte count, and
then that many bytes of payload made of fixed-size records.
"""

from __future__ import annotations

import struct
from typing import BinaryIO, Iterable, Union

Layout = Union[str, struct.Struct]

_HEADER = struct.Struct("<4sI")


class ChunkError(RuntimeError):
    """Raised when a chunk cannot be read as expected."""


def _magic_bytes(magic: str | bytes) -> bytes:
    return magic.encode("ascii") if isinstance(magic, str) else bytes(magic)


def _as_struct(layout: Layout) -> struct.Struct:
    if isinstance(layout, struct.Struct):
        packer = layout
    else:
        if not layout or layout[0] not in "@=<>!":
            layout = "<" + layout
        packer = struct.Struct(layout)
    if packer.size == 0:
        raise ValueError("chunk record layout must have a non-zero size")
    return packer


def _read_payload(stream: BinaryIO, magic: str | bytes, item_size: int) -> bytes:
    header = stream.read(_HEADER.size)
    if header is None or len(header) != _HEADER.size:
        raise ChunkError("Failed to read chunk header")
    found, size = _HEADER.unpack(header)
    if found != _magic_bytes(magic):
        raise ChunkError("Unexpected magic number in chunk")
    if size % item_size != 0:
        raise ChunkError("Size of chunk not divisible by element size")
    payload = stream.read(size)
    if payload is None or len(payload) != size:
        raise ChunkError("Failed to read chunk data.")
    return payload


def _write_payload(stream: BinaryIO, magic: str | bytes, payload: bytes) -> None:
    raw = _magic_bytes(magic)
    if len(raw) != 4:
        raise ValueError(f"chunk magic must be four bytes, got {raw!r}")
    stream.write(_HEADER.pack(raw, len(payload)))
    stream.write(payload)


def read_chunk(stream: BinaryIO, magic: str | bytes, layout: Layout) -> list[tuple]:
    """Read a chunk tagged ``magic`` and unpack it into records of ``layout``.

    ``layout`` is a :mod:`struct` format; without a byte-order prefix it is
    read as little-endian and unpadded.
    """
    packer = _as_struct(layout)
    payload = _read_payload(stream, magic, packer.size)
    return list(packer.iter_unpack(payload))


def write_chunk(
    stream: BinaryIO, magic: str | bytes, layout: Layout, records: Iterable[tuple]
) -> None:
    """Write ``records`` packed with ``layout`` as a chunk tagged ``magic``."""
    packer = _as_struct(layout)
    payload = b"".join(packer.pack(*record) for record in records)
    _write_payload(stream, magic, payload)


def read_bytes_chunk(stream: BinaryIO, magic: str | bytes) -> bytes:
    """Read a chunk of raw bytes tagged ``magic``."""
    return _read_payload(stream, magic, 1)


def write_bytes_chunk(stream: BinaryIO, magic: str | bytes, data: bytes) -> None:
    """Write raw bytes as a chunk tagged ``magic``."""
    _write_payload(stream, magic, bytes(data))
"""Decoding of QQ Music ``qmc0``, ``qmc3`` and ``qmcflac`` files."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from itertools import islice
from pathlib import Path
from typing import Any

_QMC0_TABLE = bytes((
    0x77, 0x48, 0x32, 0x73, 0xDE, 0xF2, 0xC0, 0xC8, 0x95, 0xEC, 0x30, 0xB2, 0x51, 0xC3, 0xE1, 0xA0,
    0x9E, 0xE6, 0x9D, 0xCF, 0xFA, 0x7F, 0x14, 0xD1, 0xCE, 0xB8, 0xDC, 0xC3, 0x4A, 0x67, 0x93, 0xD6,
    0x28, 0xC2, 0x91, 0x70, 0xCA, 0x8D, 0xA2, 0xA4, 0xF0, 0x08, 0x61, 0x90, 0x7E, 0x6F, 0xA2, 0xE0, 0xEB,
    0xAE, 0x3E, 0xB6, 0x67, 0xC7, 0x92, 0xF4, 0x91, 0xB5, 0xF6, 0x6C, 0x5E, 0x84, 0x40, 0xF7, 0xF3,
    0x1B, 0x02, 0x7F, 0xD5, 0xAB, 0x41, 0x89, 0x28, 0xF4, 0x25, 0xCC, 0x52, 0x11, 0xAD, 0x43, 0x68, 0xA6,
    0x41, 0x8B, 0x84, 0xB5, 0xFF, 0x2C, 0x92, 0x4A, 0x26, 0xD8, 0x47, 0x6A, 0x7C, 0x95, 0x61, 0xCC,
    0xE6, 0xCB, 0xBB, 0x3F, 0x47, 0x58, 0x89, 0x75, 0xC3, 0x75, 0xA1, 0xD9, 0xAF, 0xCC, 0x08, 0x73, 0x17,
    0xDC, 0xAA, 0x9A, 0xA2, 0x16, 0x41, 0xD8, 0xA2, 0x06, 0xC6, 0x8B, 0xFC, 0x66, 0x34, 0x9F, 0xCF, 0x18,
    0x23, 0xA0, 0x0A, 0x74, 0xE7, 0x2B, 0x27, 0x70, 0x92, 0xE9, 0xAF, 0x37, 0xE6, 0x8C, 0xA7, 0xBC, 0x62,
    0x65, 0x9C, 0xC2, 0x08, 0xC9, 0x88, 0xB3, 0xF3, 0x43, 0xAC, 0x74, 0x2C, 0x0F, 0xD4, 0xAF, 0xA1, 0xC3, 0x01,
    0x64, 0x95, 0x4E, 0x48, 0x9F, 0xF4, 0x35, 0x78, 0x95, 0x7A, 0x39, 0xD6, 0x6A, 0xA0, 0x6D, 0x40,
    0xE8, 0x4F, 0xA8, 0xEF, 0x11, 0x1D, 0xF3, 0x1B, 0x3F, 0x3F, 0x07, 0xDD, 0x6F, 0x5B, 0x19, 0x30, 0x19,
    0xFB, 0xEF, 0x0E, 0x37, 0xF0, 0x0E, 0xCD, 0x16, 0x49, 0xFE, 0x53, 0x47, 0x13, 0x1A, 0xBD, 0xA4, 0xF1,
    0x40, 0x19, 0x60, 0x0E, 0xED, 0x68, 0x09, 0x06, 0x5F, 0x4D, 0xCF, 0x3D, 0x1A, 0xFE, 0x20, 0x77, 0xE4, 0xD9,
    0xDA, 0xF9, 0xA4, 0x2B, 0x76, 0x1C, 0x71, 0xDB, 0x00, 0xBC, 0xFD, 0x0C, 0x6C, 0xA5, 0x47, 0xF7, 0xF6, 0x00,
    0x79, 0x4A, 0x11,
))

_SEED_MAP = (
    (0x4A, 0xD6, 0xCA, 0x90, 0x67, 0xF7, 0x52),
    (0x5E, 0x95, 0x23, 0x9F, 0x13, 0x11, 0x7E),
    (0x47, 0x74, 0x3D, 0x90, 0xAA, 0x3F, 0x51),
    (0xC6, 0x09, 0xD5, 0x9F, 0xFA, 0x66, 0xF9),
    (0xF3, 0xD6, 0xA1, 0x90, 0xA0, 0xF7, 0xF0),
    (0x1D, 0x95, 0xDE, 0x9F, 0x84, 0x11, 0xF4),
    (0x0E, 0x74, 0xBB, 0x90, 0xBC, 0x3F, 0x92),
    (0x00, 0x09, 0x5B, 0x9F, 0x62, 0x66, 0xA1),
)

_QMC0_PERIOD = 0x7FFF
_FLAC_SEGMENT = 0x8000

Progress = Callable[[str, int], Any]


def qmc0_mask(index: int) -> int:
    """Return the XOR mask byte for position ``index`` of a qmc0/qmc3 file."""
    if index < 0:
        raise ValueError("index must not be negative")
    if index > 0x800:
        index %= _QMC0_PERIOD
    return _QMC0_TABLE[(index * index + 80923) % 256]


# Every position maps onto this block: mask(i) == block[i % 0x7fff].
_QMC0_BLOCK = bytes(qmc0_mask(i) for i in range(_QMC0_PERIOD))


def _xor(data: bytes, mask: bytes) -> bytes:
    size = len(data)
    if size == 0:
        return b""
    value = int.from_bytes(data, "little") ^ int.from_bytes(mask[:size], "little")
    return value.to_bytes(size, "little")


def _repeat(block: bytes, size: int) -> bytes:
    count = -(-size // len(block))
    return (block * count)[:size]


@contextmanager
def _track(progress: Progress | None, name: str, total: int) -> Iterator[Callable[[int], Any]]:
    if progress is None:
        yield lambda _n: None
        return
    with progress(name, total) as bar:
        yield bar.update


def decode_qmc0(data: bytes) -> bytes:
    """Decode (or, symmetrically, encode) the content of a qmc0/qmc3 file."""
    data = bytes(data)
    return _xor(data, _repeat(_QMC0_BLOCK, len(data)))


def qmcflac_keystream() -> Iterator[int]:
    """Yield the endless XOR key stream of a qmcflac file."""
    x, y, dx, index = -1, 8, 1, -1
    while True:
        index += 1
        if x < 0:
            dx = 1
            y = (8 - y) % 8
            ret = 0xC3
        elif x > 6:
            dx = -1
            y = 7 - y
            ret = 0xD8
        else:
            ret = _SEED_MAP[y][x]
        x += dx
        if index == _FLAC_SEGMENT or (index > _FLAC_SEGMENT and (index + 1) % _FLAC_SEGMENT == 0):
            continue
        yield ret


def decode_qmcflac(data: bytes) -> bytes:
    """Decode (or, symmetrically, encode) the content of a qmcflac file."""
    data = bytes(data)
    return _xor(data, bytes(islice(qmcflac_keystream(), len(data))))


def replace_suffix(path: str | os.PathLike[str], suffix: str) -> str:
    """Replace everything from the last dot of ``path`` with ``suffix``."""
    text = os.fspath(path)
    dot = text.rfind(".")
    if dot == -1:
        raise ValueError("file not expected")
    return text[:dot] + suffix


def _convert(
    path: str | os.PathLike[str],
    progress: Progress | None,
    decoder: Callable[[bytes], bytes],
) -> str:
    source = os.fspath(path)
    data = Path(source).read_bytes()
    with _track(progress, os.path.basename(source), len(data)) as advance:
        decoded = decoder(data)
        advance(len(data))
    target = replace_suffix(source, ".mp3")
    Path(target).write_bytes(decoded)
    print(target)
    return target


def decode_qmc0_file(path: str | os.PathLike[str], progress: Progress | None = None) -> str:
    """Decode a qmc0/qmc3 file next to itself as ``.mp3``; return the new path."""
    return _convert(path, progress, decode_qmc0)


def decode_qmcflac_file(path: str | os.PathLike[str], progress: Progress | None = None) -> str:
    """Decode a qmcflac file next to itself as ``.mp3``; return the new path."""
    return _convert(path, progress, decode_qmcflac)
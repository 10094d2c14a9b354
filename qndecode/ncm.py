"""Reading and decrypting NetEase Cloud Music ``.ncm`` files."""

from __future__ import annotations

import base64
import binascii
import json
import os
import struct
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .qmc import replace_suffix

CORE_KEY = bytes.fromhex("687A4852416D736F356B496E62617857")
META_KEY = bytes.fromhex("2331346C6A6B5F215C5D2630553C2728")

_MAGIC = (0x4E455443, 0x4D414446)
_HEADER_SIZE = 4 * 2 + 2
_KEY_PREFIX = len("neteasecloudmusic")
_META_PREFIX = len("163 key(Don't modify):")
_MUSIC_PREFIX = len("music:")
_SMALL_FILE = 16 * 1024 ** 2
_BLOCK = 16

Progress = Callable[[str, int], Any]


class NcmError(ValueError):
    """Raised when a file is not a readable NCM file."""


@dataclass
class Album:
    id: str = ""
    name: str = ""
    cover_url: str = ""


@dataclass
class Meta:
    id: str = ""
    name: str = ""
    album: Album | None = None
    bitrate: float = 0.0
    duration: float = 0.0
    format: str = ""
    comment: str = ""


def build_key_box(key: bytes) -> bytes:
    """Build the 256-byte substitution box from the decrypted audio key."""
    if not key:
        raise NcmError("empty key")
    box = list(range(256))
    key_len = len(key) & 0xFF
    last = 0
    offset = 0
    for i in range(256):
        c = (box[i] + last + key[offset]) & 0xFF
        offset += 1
        if offset >= key_len:
            offset = 0
        box[i], box[c] = box[c], box[i]
        last = c
    return bytes(box)


def decrypt_aes128_ecb(key: bytes, data: bytes) -> bytes:
    """Decrypt the whole blocks of ``data`` with AES-ECB and strip the padding."""
    data = bytes(data)[: len(data) // _BLOCK * _BLOCK]
    if not data:
        raise NcmError("nothing to decrypt")
    try:
        decryptor = Cipher(algorithms.AES(bytes(key)), modes.ECB()).decryptor()
    except ValueError as exc:
        raise NcmError(str(exc)) from exc
    plain = decryptor.update(data) + decryptor.finalize()
    padding = plain[-1]
    if padding > len(plain):
        raise NcmError("bad padding")
    return plain[: len(plain) - padding]


def _name(fp: BinaryIO) -> str:
    return str(getattr(fp, "name", "<stream>"))


def _read_exact(fp: BinaryIO, size: int) -> bytes:
    data = fp.read(size)
    if len(data) < size:
        raise NcmError(f"{_name(fp)}: unexpected end of file")
    return data


def _read_u32(fp: BinaryIO) -> int:
    return struct.unpack("<I", _read_exact(fp, 4))[0]


def _size(fp: BinaryIO) -> int:
    position = fp.tell()
    size = fp.seek(0, os.SEEK_END)
    fp.seek(position)
    return size


def check_ncm(fp: BinaryIO) -> bool:
    """Check the magic header; raise :class:`NcmError` if it is wrong."""
    fp.seek(0)
    head = fp.read(8)
    if len(head) < 8 or struct.unpack("<II", head) != _MAGIC:
        raise NcmError(f"{_name(fp)} isn't netease cloud music copyright file")
    return True


def read_key(fp: BinaryIO) -> bytes:
    """Read and decrypt the audio key; leave the file just after it."""
    check_ncm(fp)
    fp.seek(_HEADER_SIZE)
    key_data = bytes(b ^ 0x64 for b in _read_exact(fp, _read_u32(fp)))
    return decrypt_aes128_ecb(CORE_KEY, key_data)[_KEY_PREFIX:]


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise NcmError(f"bad number in meta data: {value!r}") from exc


def dump_meta(fp: BinaryIO) -> Meta:
    """Read the track's meta data; leave the file just after it."""
    read_key(fp)
    length = _read_u32(fp)
    if length == 0:
        return Meta(format="mp3" if _size(fp) < _SMALL_FILE else "flac")

    modified = bytes(b ^ 0x63 for b in _read_exact(fp, length))
    try:
        encrypted = base64.b64decode(modified[_META_PREFIX:], validate=True)
    except binascii.Error as exc:
        raise NcmError(f"bad meta data: {exc}") from exc
    plain = decrypt_aes128_ecb(META_KEY, encrypted)[_MUSIC_PREFIX:]
    try:
        info = json.loads(plain)
    except ValueError as exc:
        raise NcmError(f"bad meta data: {exc}") from exc
    if not isinstance(info, dict):
        raise NcmError("meta data is not an object")

    album = Album(
        id=_text(info.get("albumId")),
        name=_text(info.get("album")),
        cover_url=_text(info.get("albumPic")),
    )
    return Meta(
        id=_text(info.get("musicId")),
        name=_text(info.get("musicName")),
        album=album,
        bitrate=_number(info.get("bitrate")),
        duration=_number(info.get("duration")),
        format=_text(info.get("format")),
        comment=modified.decode("utf-8", errors="replace"),
    )


def dump_cover(fp: BinaryIO) -> bytes:
    """Return the embedded cover image; leave the file at the audio data."""
    dump_meta(fp)
    fp.seek(9, os.SEEK_CUR)  # crc32 and gap
    return _read_exact(fp, _read_u32(fp))


def is_flac(fp: BinaryIO) -> bool:
    """Tell whether the decoded audio is to be stored as FLAC."""
    check_ncm(fp)
    fp.seek(_HEADER_SIZE)
    if _read_u32(fp) == 0 and _size(fp) < _SMALL_FILE:
        return False
    return True


def decrypt_audio(data: bytes, box: bytes) -> bytes:
    """Decrypt (or, symmetrically, encrypt) audio data with a key box."""
    if len(box) != 256:
        raise ValueError("key box must hold 256 bytes")
    mask = bytearray(256)
    for i in range(256):
        j = (i + 1) & 0xFF
        mask[i] = box[(box[j] + box[(box[j] + j) & 0xFF]) & 0xFF]
    data = bytes(data)
    size = len(data)
    if size == 0:
        return b""
    stream = (bytes(mask) * (-(-size // 256)))[:size]
    value = int.from_bytes(data, "little") ^ int.from_bytes(stream, "little")
    return value.to_bytes(size, "little")


@contextmanager
def _track(progress: Progress | None, name: str, total: int) -> Iterator[Callable[[int], Any]]:
    if progress is None:
        yield lambda _n: None
        return
    with progress(name, total) as bar:
        yield bar.update


def dump_file(path: str | os.PathLike[str], progress: Progress | None = None) -> str:
    """Decrypt an NCM file next to itself as ``.flac`` or ``.mp3``; return the new path."""
    source = os.fspath(path)
    try:
        fp = open(source, "rb")
    except OSError as exc:
        raise NcmError("the file is not support") from exc
    with fp:
        check_ncm(fp)
        key = read_key(fp)
        dump_cover(fp)
        box = build_key_box(key)
        data = fp.read()
        with _track(progress, os.path.basename(source), len(data)) as advance:
            audio = decrypt_audio(data, box)
            advance(len(data))
        flac = is_flac(fp)
    target = replace_suffix(source, ".flac" if flac else ".mp3")
    Path(target).write_bytes(audio)
    print(target)
    return target
import struct
from contextlib import contextmanager

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from qndecode.cli import DecodeError, collect_files, decode_dir, decode_file, main
from qndecode.ncm import CORE_KEY, build_key_box, decrypt_audio
from qndecode.qmc import decode_qmc0, decode_qmcflac

AUDIO = bytes(range(256)) * 5


def _encrypt_ecb(key, plain):
    pad = 16 - len(plain) % 16
    plain = plain + bytes([pad]) * pad
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    return encryptor.update(plain) + encryptor.finalize()


def _make_ncm(audio_key, audio):
    key_block = bytes(b ^ 0x64 for b in _encrypt_ecb(CORE_KEY, b"neteasecloudmusic" + audio_key))
    out = struct.pack("<II", 0x4E455443, 0x4D414446) + b"\x00\x00"
    out += struct.pack("<I", len(key_block)) + key_block
    out += struct.pack("<I", 0)  # no meta data
    out += b"\x00" * 9  # crc32 and gap
    out += struct.pack("<I", 3) + b"IMG"
    out += decrypt_audio(audio, build_key_box(audio_key))
    return out


class _Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, name, total):
        recorder = self

        class _Bar:
            def update(self, n):
                recorder.calls.append((name, total, n))

        @contextmanager
        def bar():
            yield _Bar()

        return bar()


def test_decode_file_qmc0(tmp_path):
    source = tmp_path / "song.qmc0"
    source.write_bytes(decode_qmc0(AUDIO))
    target = decode_file(source)
    assert target == str(tmp_path / "song.mp3")
    assert (tmp_path / "song.mp3").read_bytes() == AUDIO


def test_decode_file_qmc3(tmp_path):
    source = tmp_path / "song.qmc3"
    source.write_bytes(decode_qmc0(AUDIO))
    decode_file(source)
    assert (tmp_path / "song.mp3").read_bytes() == AUDIO


def test_decode_file_qmcflac_reports_progress(tmp_path):
    source = tmp_path / "track.qmcflac"
    source.write_bytes(decode_qmcflac(AUDIO))
    recorder = _Recorder()
    decode_file(str(source), recorder)
    assert (tmp_path / "track.mp3").read_bytes() == AUDIO
    assert recorder.calls == [("track.qmcflac", len(AUDIO), len(AUDIO))]


def test_decode_file_ncm(tmp_path):
    source = tmp_path / "tune.ncm"
    source.write_bytes(_make_ncm(b"placeholder", AUDIO))
    target = decode_file(source)
    assert target == str(tmp_path / "tune.flac")
    assert (tmp_path / "tune.flac").read_bytes() == AUDIO


def test_decode_file_unsupported(tmp_path):
    source = tmp_path / "song.wav"
    source.write_bytes(b"data")
    with pytest.raises(DecodeError, match="the file not support"):
        decode_file(source)


def test_collect_files_filters_and_sorts(tmp_path):
    for name in ("b.ncm", "a.qmc0", "c.txt", "d.qmc3", "e.qmcflac", "noext"):
        (tmp_path / name).write_bytes(b"x")
    (tmp_path / "sub.qmc0").mkdir()
    found = collect_files(tmp_path)
    assert found == [str(tmp_path / n) for n in ("a.qmc0", "b.ncm", "d.qmc3", "e.qmcflac")]


def test_collect_files_missing_dir(tmp_path):
    with pytest.raises(DecodeError):
        collect_files(tmp_path / "missing")


def test_decode_dir_missing(tmp_path):
    with pytest.raises(DecodeError, match="the dir not found"):
        decode_dir(tmp_path / "missing")


def test_decode_dir_not_a_folder(tmp_path):
    source = tmp_path / "file.qmc0"
    source.write_bytes(b"x")
    with pytest.raises(DecodeError, match="the dir is not a folder"):
        decode_dir(source)


def test_decode_dir_skips_broken_files(tmp_path):
    (tmp_path / "bad.ncm").write_bytes(b"not an ncm file at all")
    (tmp_path / "good.qmc0").write_bytes(decode_qmc0(AUDIO))
    (tmp_path / "other.txt").write_bytes(b"ignored")
    written = decode_dir(tmp_path)
    assert written == [str(tmp_path / "good.mp3")]
    assert (tmp_path / "good.mp3").read_bytes() == AUDIO
    assert not (tmp_path / "bad.mp3").exists()


def test_main_version(capsys):
    assert main(["version"]) == 0
    assert "qn-decode Static Site Generator v0.9 -- HEAD" in capsys.readouterr().out


def test_main_decode_requires_path(capsys):
    assert main(["decode"]) == 1
    assert "require a file path" in capsys.readouterr().out


def test_main_decode_file_not_found(tmp_path, capsys):
    assert main(["decode", "-f", str(tmp_path / "missing.qmc0")]) == 1
    assert "file not found" in capsys.readouterr().out


def test_main_decode_dir_not_found(tmp_path, capsys):
    assert main(["decode", "-d", str(tmp_path / "missing")]) == 1
    assert "dir not found" in capsys.readouterr().out


def test_main_decode_file(tmp_path, capsys):
    source = tmp_path / "song.qmcflac"
    source.write_bytes(decode_qmcflac(AUDIO))
    assert main(["decode", "--FILE", str(source)]) == 0
    assert (tmp_path / "song.mp3").read_bytes() == AUDIO
    assert str(tmp_path / "song.mp3") in capsys.readouterr().out


def test_main_decode_unsupported_file(tmp_path, capsys):
    source = tmp_path / "song.ogg"
    source.write_bytes(b"data")
    assert main(["decode", "-f", str(source)]) == 1
    assert "the file not support" in capsys.readouterr().out


def test_main_decode_dir(tmp_path):
    (tmp_path / "one.qmc0").write_bytes(decode_qmc0(AUDIO))
    (tmp_path / "two.qmcflac").write_bytes(decode_qmcflac(AUDIO[::-1]))
    assert main(["decode", "--DIR", str(tmp_path)]) == 0
    assert (tmp_path / "one.mp3").read_bytes() == AUDIO
    assert (tmp_path / "two.mp3").read_bytes() == AUDIO[::-1]


def test_main_reports_explicit_config(tmp_path, capsys):
    config = tmp_path / "settings.yaml"
    config.write_text("key: value\n")
    assert main(["--config", str(config), "version"]) == 0
    assert f"Using config file: {config}" in capsys.readouterr().out
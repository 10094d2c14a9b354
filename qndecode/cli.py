"""Command line front end: decode single files or whole directories."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable

from tqdm import tqdm

from .ncm import dump_file
from .qmc import decode_qmc0_file, decode_qmcflac_file

log = logging.getLogger(__name__)

PROG = "qn-decode"
VERSION_TEXT = "qn-decode Static Site Generator v0.9 -- HEAD"
CONFIG_NAME = ".qn-decode"
_CONFIG_EXTENSIONS = ("json", "toml", "yaml", "yml", "properties", "props", "prop", "hcl", "env", "ini")

Progress = Callable[[str, int], Any]

_DECODERS: dict[str, Callable[..., str]] = {
    "qmcflac": decode_qmcflac_file,
    "qmc0": decode_qmc0_file,
    "qmc3": decode_qmc0_file,
    "ncm": dump_file,
}


class DecodeError(Exception):
    """Raised when a file or directory cannot be decoded."""


def _extension(name: str) -> str:
    return name[name.rfind(".") + 1:]


def decode_file(path: str | os.PathLike[str], progress: Progress | None = None) -> str:
    """Decode one file by its extension; return the path written."""
    source = os.fspath(path)
    decoder = _DECODERS.get(_extension(source))
    if decoder is None:
        raise DecodeError("the file not support")
    return decoder(source, progress)


def collect_files(dirname: str | os.PathLike[str]) -> list[str]:
    """List the decodable files directly inside ``dirname``, sorted by name."""
    directory = os.fspath(dirname)
    try:
        entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
    except OSError as exc:
        raise DecodeError(str(exc)) from exc
    return [
        os.path.join(directory, entry.name)
        for entry in entries
        if not entry.is_dir() and _extension(entry.name) in _DECODERS
    ]


def decode_dir(dirname: str | os.PathLike[str], progress: Progress | None = None) -> list[str]:
    """Decode every supported file in a directory; failures are logged and skipped.

    Returns the paths written.
    """
    directory = os.fspath(dirname)
    log.info("Decode Dir: %s", directory)
    if not os.path.exists(directory):
        raise DecodeError("the dir not found")
    if not os.path.isdir(directory):
        raise DecodeError("the dir is not a folder")
    written = []
    for path in collect_files(directory):
        try:
            written.append(decode_file(path, progress))
        except (DecodeError, OSError, ValueError) as exc:
            log.warning("Decode file error: %s", exc)
    return written


def _progress_bar(name: str, total: int) -> tqdm:
    return tqdm(total=total, desc=name, unit="B", unit_scale=True, leave=True)


def _find_config(explicit: str | None) -> Path | None:
    if explicit:
        path = Path(explicit)
        return path if path.is_file() else None
    home = Path.home()
    for extension in _CONFIG_EXTENSIONS:
        candidate = home / f"{CONFIG_NAME}.{extension}"
        if candidate.is_file():
            return candidate
    return None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="A command tool for transfering 'qmcflac'|'qmc0'|'qmc3'|'ncm' to 'mp3' or 'flac'.",
    )
    parser.add_argument("--config", default="", help="config file (default is $HOME/.qn-decode.yaml)")
    parser.add_argument("-t", "--toggle", action="store_true", help="Help message for toggle")
    commands = parser.add_subparsers(dest="command")

    decode = commands.add_parser("decode", help="decode music file")
    decode.add_argument("-f", "--FILE", dest="file", default="", help="decode file path")
    decode.add_argument("-d", "--DIR", dest="dir", default="", help="decode dir path")

    commands.add_parser("version", help="Print the version number of qn-decode")
    return parser


def _check_decode_args(file: str, dirname: str) -> None:
    if not file and not dirname:
        raise DecodeError("require a file path")
    if file and not os.path.lexists(file):
        raise DecodeError("file not found")
    if dirname and not os.path.lexists(dirname):
        raise DecodeError("dir not found")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line tool; return the exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = _find_config(args.config)
    except RuntimeError as exc:
        print(exc)
        return 1
    if config is not None:
        print("Using config file:", config)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "version":
        print(VERSION_TEXT)
        return 0

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    try:
        _check_decode_args(args.file, args.dir)
        if args.file:
            decode_file(args.file, _progress_bar)
        else:
            decode_dir(args.dir, _progress_bar)
    except (DecodeError, OSError, ValueError) as exc:
        print(exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
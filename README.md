# qndecode

A command-line tool that turns `qmcflac`, `qmc0`, `qmc3` and `ncm` music files
into plain `mp3` or `flac` files.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Usage

Decode a single file. The result is written next to it, with everything from
the last dot of the name replaced by the new suffix, and its path is printed:

```
qn-decode decode -f song.qmc0
qn-decode decode --FILE album/track.ncm
```

Decode every supported file directly inside a directory. Files are taken in
name order; subdirectories are not visited:

```
qn-decode decode -d ~/Music/downloads
qn-decode decode --DIR ~/Music/downloads
```

Print the version:

```
qn-decode version
```

Without a subcommand the help text is printed. A progress bar is shown for
each file while it is decoded.

Output names by input type:

| Input            | Output                         |
|------------------|--------------------------------|
| `.qmc0`, `.qmc3` | `.mp3`                         |
| `.qmcflac`       | `.mp3`                         |
| `.ncm`           | `.flac` or `.mp3`, as detected |

When decoding a directory, a file that fails is logged and skipped, and the
remaining files are still processed. Other errors (no `-f`/`-d` given, a path
that does not exist, an unsupported file type, a damaged file) are printed and
the command exits with status 1.

### Global options

- `--config PATH` – a config file. Without it, `~/.qn-decode.<ext>` is looked
  for (`json`, `toml`, `yaml`, `yml`, `properties`, `props`, `prop`, `hcl`,
  `env`, `ini`). If one is found, `Using config file: ...` is printed.
- `-t`, `--toggle` – accepted and ignored.

## Library use

The qmc decoders work on bytes as well as on files:

```python
from qndecode.qmc import decode_qmc0, decode_qmcflac

with open("song.qmc0", "rb") as fh:
    mp3_bytes = decode_qmc0(fh.read())
```

`decode_qmc0_file` and `decode_qmcflac_file` write the decoded file next to
the input and return its path.

`qndecode.ncm` reads `ncm` files from binary file objects: `check_ncm`,
`read_key`, `dump_meta` (returns a `Meta` with an `Album`), `dump_cover`
(returns the embedded image bytes) and `is_flac`. `dump_file(path)` decrypts a
whole file next to itself and returns the new path. Format errors raise
`NcmError`.

`qndecode.cli` offers `decode_file`, `collect_files` and `decode_dir`, which
pick the decoder by file extension; `DecodeError` is raised for unsupported
files and missing directories.

## What it does not do

- The settings in a config file are not read; the file is only located and
  reported.
- The meta data and cover read from `ncm` files are not written into the
  output files as tags.
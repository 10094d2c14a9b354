[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "qndecode"
version = "0.9.0"
description = "Command-line tool that converts qmcflac, qmc0, qmc3 and ncm music files to mp3 or flac"
requires-python = ">=3.10"
keywords = ["qmc", "qmcflac", "ncm", "audio", "decode", "mp3", "flac"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Conversion",
]
dependencies = [
    "cryptography",
    "tqdm",
]

[project.optional-dependencies]
test = [
    "pytest",
    "cryptography",
]

[project.scripts]
qn-decode = "qndecode.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["qndecode"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

"""Decode qmcflac, qmc0, qmc3 and ncm music files to mp3 or flac."""

__version__ = "0.9.0"
__all__ = ["__version__"]
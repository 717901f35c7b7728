"""
fastx_split - A tool for removing UMI and sample index linkers from FastQ reads
and demultiplexing them by sample index.

"""

# fastx_split/__init__.py
from .version import __version__

from .python import LinkerSpec, LinkerNtSpec, LinkerSplit, LinkerError, BadSpecChar, LinkerSplitter

__all__ = ['LinkerSpec', 'LinkerNtSpec', 'LinkerSplit', 'LinkerError', 'BadSpecChar', 'LinkerSplitter']

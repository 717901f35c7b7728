"""
fastx_split - A tool for removing UMI and sample index linkers from FastQ reads.
Helper utilities for fastx_split pipelines

"""

from ..version import __version__


from .linkers import LinkerSpec, LinkerNtSpec, LinkerSplit, LinkerError, BadSpecChar
from .fastq_splitter_by_linker import FastqSplitter as LinkerSplitter

__all__ = ['LinkerSpec', 'LinkerNtSpec', 'LinkerSplit', 'LinkerError', 'BadSpecChar', 'LinkerSplitter']

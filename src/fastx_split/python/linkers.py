"""
Linker specifications - describe and remove the fixed linker around a read.

A linker is a run of bases at the start (prefix) and/or the end (suffix) of a
read that is not biological insert. Each linker position is either part of a
unique molecular identifier (UMI, spec character ``N``) or part of the sample
index (spec character ``I``).

    >>> spec = LinkerSpec.parse("NNN", "III")
    >>> split = spec.split(b"ACGTACGTACGTACGT", bytes(range(32, 48)))
    >>> split.umi, split.sample_index, bytes(split.sequence)
    (b'ACG', b'CGT', b'TACGTACGTA')
"""

import enum
from typing import Iterable, NamedTuple, Optional, Tuple

from Bio.SeqRecord import SeqRecord


class LinkerError(ValueError):
    """Base class for invalid linker specifications."""


class BadSpecChar(LinkerError):
    def __init__(self, char: str):
        super().__init__(f"Bad linker spec char '{char}'")
        self.char = char


class LinkerNtSpec(enum.Enum):
    """Role of a single linker nucleotide."""

    UMI = "N"
    SAMPLE_INDEX = "I"

    @classmethod
    def from_char(cls, ch: str) -> "LinkerNtSpec":
        """
        Create a linker nucleotide from a specification character.

        Args:
            ch: ``N`` for a UMI base, ``I`` for a sample index base

        Raises:
            BadSpecChar: for any other character
        """
        if ch == "N":
            return cls.UMI
        elif ch == "I":
            return cls.SAMPLE_INDEX
        raise BadSpecChar(ch)

    def __str__(self):
        return self.value


class LinkerSplit(NamedTuple):
    """
    A read split into UMI, sample index and insert.

    ``umi`` and ``sample_index`` are new byte strings. ``sequence`` and
    ``quality`` are memoryviews into the buffers that were split and are only
    meaningful while those buffers are kept around.
    """

    umi: bytes
    sample_index: bytes
    sequence: memoryview
    quality: memoryview


class LinkerSpec:
    """
    Linker sequence specification describing how bases are removed from the
    beginning and/or the end of a read and converted into the UMI and the
    sample index.
    """

    __slots__ = ("_prefix", "_suffix", "_sample_index_length", "_umi_length")

    def __init__(self, prefix: Iterable[LinkerNtSpec], suffix: Iterable[LinkerNtSpec]):
        self._prefix = tuple(prefix)
        self._suffix = tuple(suffix)
        linker = self._prefix + self._suffix
        self._sample_index_length = sum(1 for nt in linker if nt is LinkerNtSpec.SAMPLE_INDEX)
        self._umi_length = sum(1 for nt in linker if nt is LinkerNtSpec.UMI)

    @classmethod
    def parse(cls, prefix_str: str, suffix_str: str) -> "LinkerSpec":
        """
        Create a linker specification from prefix and suffix strings.

        Args:
            prefix_str: roles of the bases removed from the start of the read
            suffix_str: roles of the bases removed from the end of the read

        Raises:
            BadSpecChar: if any character of either string is not N or I
        """
        prefix = [LinkerNtSpec.from_char(ch) for ch in prefix_str]
        suffix = [LinkerNtSpec.from_char(ch) for ch in suffix_str]
        return cls(prefix, suffix)

    @property
    def prefix(self) -> Tuple[LinkerNtSpec, ...]:
        return self._prefix

    @property
    def suffix(self) -> Tuple[LinkerNtSpec, ...]:
        return self._suffix

    @property
    def prefix_length(self) -> int:
        """Number of bases removed from the beginning of the raw read."""
        return len(self._prefix)

    @property
    def suffix_length(self) -> int:
        """Number of bases removed from the end of the raw read."""
        return len(self._suffix)

    @property
    def linker_length(self) -> int:
        """Total number of bases removed from the raw read."""
        return len(self._prefix) + len(self._suffix)

    @property
    def sample_index_length(self) -> int:
        return self._sample_index_length

    @property
    def umi_length(self) -> int:
        return self._umi_length

    def split(self, sequence: bytes, quality: bytes) -> Optional[LinkerSplit]:
        """
        Split a read according to the linker specification.

        Args:
            sequence: read bases
            quality: per-base qualities, same length as ``sequence``

        Returns:
            A LinkerSplit, or None when the read is shorter than the linker.

        Raises:
            ValueError: if sequence and quality lengths differ
        """
        if len(sequence) != len(quality):
            raise ValueError(
                f"Sequence length {len(sequence)} does not match quality length {len(quality)}")

        if len(sequence) < self.linker_length:
            return None

        umi = bytearray()
        sample_index = bytearray()

        for i, nt in enumerate(self._prefix):
            if nt is LinkerNtSpec.UMI:
                umi.append(sequence[i])
            elif nt is LinkerNtSpec.SAMPLE_INDEX:
                sample_index.append(sequence[i])

        suffix_start = len(sequence) - len(self._suffix)
        for i, nt in enumerate(self._suffix):
            if nt is LinkerNtSpec.UMI:
                umi.append(sequence[suffix_start + i])
            elif nt is LinkerNtSpec.SAMPLE_INDEX:
                sample_index.append(sequence[suffix_start + i])

        insert = slice(len(self._prefix), suffix_start)
        return LinkerSplit(
            umi=bytes(umi),
            sample_index=bytes(sample_index),
            sequence=memoryview(sequence)[insert],
            quality=memoryview(quality)[insert],
        )

    def split_record(self, record: SeqRecord) -> Optional[LinkerSplit]:
        """Split a FASTQ SeqRecord; qualities come from its phred_quality annotation."""
        sequence = str(record.seq).encode("ascii")
        quality = bytes(record.letter_annotations["phred_quality"])
        return self.split(sequence, quality)

    def __eq__(self, other):
        if not isinstance(other, LinkerSpec):
            return NotImplemented
        return self._prefix == other._prefix and self._suffix == other._suffix

    def __hash__(self):
        return hash((self._prefix, self._suffix))

    def __getstate__(self):
        return (self._prefix, self._suffix)

    def __setstate__(self, state):
        self.__init__(*state)

    def __repr__(self):
        prefix = "".join(str(nt) for nt in self._prefix)
        suffix = "".join(str(nt) for nt in self._suffix)
        return f"LinkerSpec.parse({prefix!r}, {suffix!r})"

    def __str__(self):
        prefix = "".join(str(nt) for nt in self._prefix)
        suffix = "".join(str(nt) for nt in self._suffix)
        return f"prefix: {prefix}, suffix: {suffix}"

import itertools
import pickle

import pytest
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord
from fastx_split.python.linkers import BadSpecChar, LinkerError, LinkerNtSpec, LinkerSpec

SEQ1 = b"ACGTACGTACGTACGT"
SEQ2 = b"AAAACCCCGGGGTTTT"
SEQ3 = b"ATCGATCGATCGATCGAT"


def quality(seq):
    return bytes(range(32, 32 + len(seq)))


def assert_split(raw_seq, prefix, suffix, umi, index, sequence, qualstart):
    spec = LinkerSpec.parse(prefix, suffix)
    split = spec.split(raw_seq, quality(raw_seq))

    assert split.umi == umi
    assert split.sample_index == index
    assert split.sequence == sequence
    assert split.quality[0] == qualstart
    assert len(split.quality) == len(split.sequence)
    for i in range(len(split.sequence) - 1):
        assert split.quality[i + 1] == split.quality[i] + 1


def test_nnn_iii():
    assert_split(SEQ1, "NNN", "III", b"ACG", b"CGT", b"TACGTACGTA", 3 + 32)
    assert_split(SEQ2, "NNN", "III", b"AAA", b"TTT", b"ACCCCGGGGT", 3 + 32)
    assert_split(SEQ3, "NNN", "III", b"ATC", b"GAT", b"GATCGATCGATC", 3 + 32)


def test_i_nnnn():
    assert_split(SEQ1, "I", "NNNN", b"ACGT", b"A", b"CGTACGTACGT", 1 + 32)
    assert_split(SEQ2, "I", "NNNN", b"TTTT", b"A", b"AAACCCCGGGG", 1 + 32)
    assert_split(SEQ3, "I", "NNNN", b"CGAT", b"A", b"TCGATCGATCGAT", 1 + 32)


def test_interleaved_roles_keep_read_order():
    # U/I positions alternate within both prefix and suffix
    spec = LinkerSpec.parse("NINI", "INNI")
    split = spec.split(b"ABCDxxxxEFGH", quality(b"ABCDxxxxEFGH"))
    assert split.umi == b"ACFG"
    assert split.sample_index == b"BDEH"
    assert split.sequence == b"xxxx"


def test_linker_exactly_read_length():
    spec = LinkerSpec.parse("NN", "")
    split = spec.split(b"AC", quality(b"AC"))
    assert split.umi == b"AC"
    assert split.sample_index == b""
    assert len(split.sequence) == 0
    assert len(split.quality) == 0


def test_too_short():
    spec = LinkerSpec.parse("NNNNNN", "")
    for n in range(6):
        seq = SEQ1[:n]
        assert spec.split(seq, quality(seq)) is None
    assert spec.split(SEQ1[:6], quality(SEQ1[:6])) is not None


def test_too_short_counts_prefix_and_suffix():
    spec = LinkerSpec.parse("NNN", "III")
    assert spec.split(b"ACGTA", quality(b"ACGTA")) is None
    assert spec.split(b"ACGTAC", quality(b"ACGTAC")).sequence == b""


def test_empty_spec_passes_reads_through():
    spec = LinkerSpec.parse("", "")
    split = spec.split(SEQ1, quality(SEQ1))
    assert split.umi == b""
    assert split.sample_index == b""
    assert split.sequence == SEQ1
    assert split.quality == quality(SEQ1)
    assert spec.split(b"", b"").sequence == b""


def test_split_views_borrow_from_input():
    qual = bytearray(quality(SEQ1))
    spec = LinkerSpec.parse("NNN", "III")
    split = spec.split(SEQ1, qual)
    assert isinstance(split.sequence, memoryview)
    qual[3] = 99
    assert split.quality[0] == 99
    assert isinstance(split.umi, bytes)
    assert isinstance(split.sample_index, bytes)


def test_split_does_not_modify_input():
    raw = bytearray(SEQ2)
    qual = bytearray(quality(SEQ2))
    LinkerSpec.parse("NNN", "III").split(raw, qual)
    assert raw == SEQ2
    assert qual == quality(SEQ2)


def test_split_is_repeatable():
    spec = LinkerSpec.parse("NIN", "IIN")
    assert spec.split(SEQ3, quality(SEQ3)) == spec.split(SEQ3, quality(SEQ3))


def test_length_mismatch_is_an_error():
    spec = LinkerSpec.parse("NNN", "III")
    with pytest.raises(ValueError):
        spec.split(SEQ1, quality(SEQ1)[:-1])


def test_split_record():
    record = SeqRecord(Seq(SEQ1.decode()), id="test_record",
                       letter_annotations={"phred_quality": list(quality(SEQ1))})
    split = LinkerSpec.parse("I", "NNNN").split_record(record)
    assert split.umi == b"ACGT"
    assert split.sample_index == b"A"
    assert split.sequence == b"CGTACGTACGT"
    assert list(split.quality) == list(range(33, 44))


SPEC_STRINGS = ["".join(chars) for n in range(4) for chars in itertools.product("NI", repeat=n)]


@pytest.mark.parametrize("prefix", SPEC_STRINGS)
@pytest.mark.parametrize("suffix", SPEC_STRINGS)
def test_parse_lengths(prefix, suffix):
    spec = LinkerSpec.parse(prefix, suffix)
    assert spec.prefix_length == len(prefix)
    assert spec.suffix_length == len(suffix)
    assert spec.linker_length == len(prefix) + len(suffix)
    assert spec.umi_length == (prefix + suffix).count("N")
    assert spec.sample_index_length == (prefix + suffix).count("I")
    assert spec.sample_index_length + spec.umi_length == spec.linker_length

    split = spec.split(SEQ3, quality(SEQ3))
    assert len(split.umi) == spec.umi_length
    assert len(split.sample_index) == spec.sample_index_length
    assert len(split.sequence) == len(split.quality) == len(SEQ3) - spec.linker_length


@pytest.mark.parametrize("prefix, suffix, bad", [
    ("NNX", "III", "X"),
    ("NNN", "IIi", "i"),
    ("n", "", "n"),
    ("", " I", " "),
    ("NN-", "II", "-"),
    ("NNN", "IÍ", "Í"),
])
def test_bad_spec_char(prefix, suffix, bad):
    with pytest.raises(BadSpecChar) as excinfo:
        LinkerSpec.parse(prefix, suffix)
    assert excinfo.value.char == bad
    assert f"'{bad}'" in str(excinfo.value)


def test_bad_spec_char_is_a_linker_error():
    # a valid prefix does not rescue a bad suffix
    with pytest.raises(LinkerError):
        LinkerSpec.parse("NNNNNN", "IIZ")
    with pytest.raises(ValueError):
        LinkerSpec.parse("Q", "III")


def test_nt_spec_from_char():
    assert LinkerNtSpec.from_char("N") is LinkerNtSpec.UMI
    assert LinkerNtSpec.from_char("I") is LinkerNtSpec.SAMPLE_INDEX
    assert str(LinkerNtSpec.UMI) == "N"
    assert str(LinkerNtSpec.SAMPLE_INDEX) == "I"


def test_spec_display_and_equality():
    spec = LinkerSpec.parse("NNI", "IN")
    assert str(spec) == "prefix: NNI, suffix: IN"
    assert spec.prefix == (LinkerNtSpec.UMI, LinkerNtSpec.UMI, LinkerNtSpec.SAMPLE_INDEX)
    assert spec == LinkerSpec.parse("NNI", "IN")
    assert spec != LinkerSpec.parse("NN", "IIN")
    assert len({spec, LinkerSpec.parse("NNI", "IN")}) == 1


def test_spec_pickles():
    spec = LinkerSpec.parse("NNNNNN", "IIIII")
    restored = pickle.loads(pickle.dumps(spec))
    assert restored == spec
    assert restored.umi_length == 6
    assert restored.sample_index_length == 5

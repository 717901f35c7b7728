import pytest

pytest.importorskip("cgatcore")
pytest.importorskip("ruffus")

from fastx_split.pipeline_split_by_linker import merge_statement, sample_labels


def test_sample_labels():
    params = {"linker_prefix": "NNNNNN", "linker_suffix": "IIIII",
              "indexes": ["sample1:ACGTA", "CATGC"]}
    assert sample_labels(params) == ["sample1", "2"]


def test_sample_labels_without_index_positions():
    params = {"linker_prefix": "NNNNNN", "linker_suffix": None, "indexes": ["sample1:ACGTA"]}
    assert sample_labels(params) == ["all"]


def test_merge_statement():
    statement = merge_statement("lib", ["all"])
    merges = statement.split(" && ")
    assert len(merges) == 3
    assert merges[0] == ("cat /dev/null $(find separate_samples.dir -name 'lib.*.processed_index_all.fastq.gz'"
                         " | sort) > merged_results.dir/lib.processed_index_all.fastq.gz")
    # chunks are concatenated in sorted chunk order
    assert all("| sort)" in merge for merge in merges)
    assert merges[2].endswith("> merged_results.dir/lib.too_short.fastq.gz")

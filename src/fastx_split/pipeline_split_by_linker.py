"""
===========================
Pipeline split_by_linker
===========================

Linker Splitting Pipeline for fastx_split
-----------------------------------------

This pipeline is part of the fastx_split toolkit and processes short-read
FastQ files whose reads carry a fixed linker: a UMI and/or a sample index at
the start and/or end of every read.

**Key Features:**
- Removes the linker from every read, appending the UMI to the read name.
- Demultiplexes reads into per-sample FastQ files by their sample index.
- Supports batch processing for both local and cluster (e.g., Slurm) environments.
- Merges and summarizes results across chunks, providing detailed statistics.

**Inputs:**
- FastQ files (``data.dir/*.fastq.gz``)
- pipeline.yml configuration file specifying the linker and sample indexes

**Outputs:**
- One FastQ file per sample, plus unassigned and too-short reads
- Merged statistics

**Usage:**
1. Generate a config file:
   ```bash
   fastx-split split_by_linker config
   ```
2. Edit `pipeline.yml` to specify the linker and sample indexes
3. Run the pipeline:
   ```bash
   fastx-split split_by_linker make full -v5
   # or locally
   fastx-split split_by_linker make full -v5 --local
   ```
"""

# ===================
# Code
# ===================

import sys
import os
from ruffus import *
import cgatcore.pipeline as P
from fastx_split.python.linkers import LinkerSpec
from fastx_split.python.fastq_splitter_by_linker import ALL_READS, parse_indexes

# Load parameters from the config file
PARAMS = P.get_parameters([
    "%s/pipeline.yml" % os.path.splitext(__file__)[0],
    "../pipeline.yml",
    "pipeline.yml"])

PYTHON_ROOT = os.path.join(os.path.dirname(__file__), "python/")


def sample_labels(params):
    """Labels of the per-sample outputs the splitter writes for this configuration."""
    linker = LinkerSpec.parse(params.get('linker_prefix') or '', params.get('linker_suffix') or '')
    if linker.sample_index_length == 0:
        return [ALL_READS]
    return list(parse_indexes(params.get('indexes') or []))


def merge_statement(name, labels):
    """Shell statement concatenating the chunk outputs of one input, in chunk order."""
    outputs = ["%s.processed_index_%s.fastq.gz" % (name, label) for label in labels]
    outputs += ["%s.unassigned.fastq.gz" % name, "%s.too_short.fastq.gz" % name]

    # gzip members concatenate into a valid gzip file
    merges = ["cat /dev/null $(find separate_samples.dir -name '%s.*%s' | sort) > merged_results.dir/%s"
              % (name, output[len(name):], output) for output in outputs]
    return " && ".join(merges)


INDEXES = PARAMS.get('indexes') or []
LABELS = sample_labels(PARAMS)


@follows(mkdir("split_tmp.dir"))
@transform('data.dir/*.fastq.gz',
           regex(r'data.dir/(\S+).fastq.gz'),
           r"split_tmp.dir/\1.aa.fastq")
def split_fastq(infile, outfile):
    '''
    Split the fastq file into smaller chunks.
    '''
    name = infile.replace('data.dir/', '').replace('.fastq.gz', '')
    statement = '''zcat %(infile)s | split -l %(split)s --additional-suffix=.fastq - %(name)s. &&
                   mv %(name)s.*.fastq split_tmp.dir/'''
    P.run(statement)


@follows(split_fastq)
@follows(mkdir("separate_samples.dir"))
@transform('split_tmp.dir/*.fastq',
           regex(r"split_tmp.dir/(\S+).fastq"),
           r"separate_samples.dir/\1/\1.stats.csv")
def separate_by_linker(infile, outfile):
    '''
    Remove the linker from each chunk and split reads by sample index.
    '''
    name = os.path.basename(infile).replace('.fastq', '')
    results_dir = os.path.join("separate_samples.dir", name)
    index_option = "--indexes " + " ".join(INDEXES) if INDEXES else ""
    statement = '''python %(PYTHON_ROOT)s/fastq_splitter_by_linker.py \
                   --prefix '%(linker_prefix)s' --suffix '%(linker_suffix)s' \
                   %(index_option)s -m %(mismatches)s --umi-separator '%(umi_separator)s' \
                   --num_workers 4 \
                   --processed-output %(name)s.processed \
                   --unassigned-output %(name)s.unassigned.fastq.gz \
                   --short-output %(name)s.too_short.fastq.gz \
                   --stats-output %(name)s.stats.csv \
                   -res %(results_dir)s -i %(infile)s -v'''
    P.run(statement, job_threads=4)


@follows(separate_by_linker)
@follows(mkdir("merged_results.dir"))
@transform('data.dir/*.fastq.gz',
           regex(r'data.dir/(\S+).fastq.gz'),
           r"merged_results.dir/\1.merge_complete")
def merge_by_linker(infile, outfile):
    '''
    Concatenate the per-chunk FastQ files of every sample, and the unassigned
    and too-short reads, into one file each in merged_results.dir.
    '''
    name = os.path.basename(infile).replace('.fastq.gz', '')
    statement = merge_statement(name, LABELS) + " && touch %(outfile)s"
    P.run(statement)


@follows(merge_by_linker)
@transform('data.dir/*.fastq.gz',
           regex(r'data.dir/(\S+).fastq.gz'),
           r"merged_results.dir/\1.linker_stats.csv")
def merge_stats(infile, outfile):
    '''
    Merge all statistics CSV files from separate_samples.dir into a single summary
    CSV file in merged_results.dir.
    '''
    statement = '''python %(PYTHON_ROOT)s/merge_linker_stats.py \
                   --input-dir separate_samples.dir --output-file %(outfile)s'''
    P.run(statement)


@follows(merge_stats)
def full():
    '''
    Dummy target for the pipeline. Ensures all steps (splitting, separating, merging)
    are executed in the correct order when running the full workflow.
    '''
    pass


def main(argv=None):
    if argv is None:
        argv = sys.argv
    P.main(argv)


if __name__ == "__main__":
    sys.exit(P.main(sys.argv))

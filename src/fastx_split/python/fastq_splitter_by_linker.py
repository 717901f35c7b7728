#!/usr/bin/env python3
import os
import logging
import argparse
import gzip
import csv
import time
from collections import Counter
from itertools import islice
from multiprocessing import Pool
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord
from tqdm import tqdm

from fastx_split.python.linkers import LinkerSpec

UNASSIGNED = "unassigned"
TOO_SHORT = "too_short"
ALL_READS = "all"
INDEX_BASES = set("ACGTN")


class FastqSplitter:
    def __init__(self, linker_spec: LinkerSpec, index_dict: Dict[str, str],
                 mismatches: int = 0, umi_separator: str = "_"):

        log_message(f"Splitting reads on linker ({linker_spec}) and assigning sample indexes...")

        self.linker_spec = linker_spec
        self.max_mismatches = mismatches
        self.umi_separator = umi_separator
        if linker_spec.sample_index_length == 0:
            # Nothing to demultiplex on, every split read belongs to one sample
            self.index_dict = {ALL_READS: ""}
        else:
            self.index_dict = index_dict
        self.index_lookup = {sequence: label for label, sequence in self.index_dict.items()}

    def assign_sample(self, sample_index: str) -> Optional[str]:
        """
        Find the sample label for an observed sample index.

        Exact matches win. Otherwise the index with the fewest mismatches is
        used, provided it is within the allowed mismatches and no other index
        is equally close.

        Args:
            sample_index: The index bases taken from the linker.

        Returns:
            The sample label, or None if the read cannot be assigned.
        """
        label = self.index_lookup.get(sample_index)
        if label is not None or self.max_mismatches <= 0:
            return label

        best_label = None
        best_distance = self.max_mismatches + 1
        tied = False
        for sequence, candidate in self.index_lookup.items():
            distance = sum(1 for a, b in zip(sample_index, sequence) if a != b)
            if distance < best_distance:
                best_label, best_distance, tied = candidate, distance, False
            elif distance == best_distance:
                tied = True

        if tied or best_distance > self.max_mismatches:
            return None
        return best_label

    def process_record(self, record: SeqRecord) -> Tuple[SeqRecord, str, str]:
        """
        Split one read and classify it.

        Returns:
            (record, classification, sample_index). Classification is a sample
            label, 'unassigned' or 'too_short'. Too short reads are returned
            unchanged with an empty sample index.
        """
        split = self.linker_spec.split_record(record)

        if split is None:
            log_message(f"Read={record.id} -> length {len(record)} shorter than linker "
                        f"({self.linker_spec.linker_length}) -> {TOO_SHORT}", logging.DEBUG)
            return record, TOO_SHORT, ""

        umi = split.umi.decode("ascii")
        sample_index = split.sample_index.decode("ascii")
        new_id = f"{record.id}{self.umi_separator}{umi}" if umi else record.id

        description = record.description
        if description.startswith(record.id):
            description = description[len(record.id):].strip()
        if sample_index:
            description = f"{description} index={sample_index}".strip()

        new_record = SeqRecord(
            Seq(split.sequence.tobytes().decode("ascii")),
            id=new_id,
            name=new_id,
            description=description,
            letter_annotations={"phred_quality": list(split.quality)}
        )

        # Indexes are stored upper case; soft-masked reads still match
        label = self.assign_sample(sample_index.upper())
        if label is None:
            log_message(f"Read={record.id} -> UMI={umi}, Index={sample_index} -> {UNASSIGNED}", logging.DEBUG)
            return new_record, UNASSIGNED, sample_index

        log_message(f"Read={record.id} -> UMI={umi}, Index={sample_index} -> Assigned to {label}, "
                    f"Length={len(new_record)}bp", logging.DEBUG)
        return new_record, label, sample_index

    def worker(self, records_chunk: List[SeqRecord]) -> List[Tuple[SeqRecord, str, str]]:
        """
        Worker function to process a chunk of FASTQ records.
        """
        result = [self.process_record(record) for record in records_chunk]
        too_short_count = sum(1 for _, classification, _ in result if classification == TOO_SHORT)
        unassigned_count = sum(1 for _, classification, _ in result if classification == UNASSIGNED)
        assigned_count = len(result) - too_short_count - unassigned_count

        log_message(f"Chunk processed: {len(records_chunk)} reads -> {assigned_count} assigned, "
                    f"{unassigned_count} unassigned and {too_short_count} too short reads")

        return result

    def split_reads(self, input_file: str, processed_output: str, unassigned_output: str,
                    short_output: str, stats_output: str, num_workers: int = 1,
                    chunk_size: int = 1000) -> Dict[str, int]:
        stats = {
            'total_reads': 0,
            'processed_reads': 0,
            'unassigned_reads': 0,
            'too_short_reads': 0
        }

        processed_records = {label: [] for label in self.index_dict}
        index_counts = Counter({label: 0 for label in self.index_dict})
        unassigned_indexes = Counter()
        unassigned_records = []
        short_records = []

        with open_fastq(input_file, 'rt') as handle:
            chunks = chunk_records(SeqIO.parse(handle, 'fastq'), chunk_size)

            log_message(f"Processing reads from {input_file} in chunks of {chunk_size}.")

            with tqdm(desc="Processing Reads", unit=" reads", dynamic_ncols=True, unit_scale=True) as pbar:
                if num_workers > 1:
                    with Pool(num_workers) as pool:
                        for result in pool.imap(self.worker, chunks):
                            self._collect(result, stats, processed_records, index_counts,
                                          unassigned_indexes, unassigned_records, short_records)
                            pbar.update(len(result))
                else:
                    for records_chunk in chunks:
                        result = self.worker(records_chunk)
                        self._collect(result, stats, processed_records, index_counts,
                                      unassigned_indexes, unassigned_records, short_records)
                        pbar.update(len(result))

        log_message("Sorting reads complete. Writing outputs.")

        # Write output files for each sample
        for label, records in processed_records.items():
            if records:
                output_file = f"{processed_output}_index_{label}.fastq.gz"
                with gzip.open(output_file, 'wt') as handle:
                    SeqIO.write(records, handle, 'fastq')

        with open_fastq(unassigned_output, 'wt') as handle:
            SeqIO.write(unassigned_records, handle, 'fastq')

        with open_fastq(short_output, 'wt') as handle:
            SeqIO.write(short_records, handle, 'fastq')

        write_stats(stats_output, stats, index_counts, unassigned_indexes)

        log_message(f"Reads: {stats['total_reads']} total, {stats['processed_reads']} assigned, "
                    f"{stats['unassigned_reads']} unassigned, {stats['too_short_reads']} too short")

        return stats

    def _collect(self, result, stats, processed_records, index_counts,
                 unassigned_indexes, unassigned_records, short_records):
        for new_record, classification, sample_index in result:
            stats['total_reads'] += 1
            if classification == TOO_SHORT:
                short_records.append(new_record)
                stats['too_short_reads'] += 1
            elif classification == UNASSIGNED:
                unassigned_records.append(new_record)
                unassigned_indexes[sample_index] += 1
                stats['unassigned_reads'] += 1
            else:
                processed_records[classification].append(new_record)
                index_counts[classification] += 1
                stats['processed_reads'] += 1


def chunk_records(records: Iterable[SeqRecord], chunk_size: int) -> Iterator[List[SeqRecord]]:
    records = iter(records)
    while True:
        chunk = list(islice(records, chunk_size))
        if not chunk:
            return
        yield chunk


def open_fastq(path: str, mode: str):
    if path.endswith('.gz'):
        return gzip.open(path, mode)
    return open(path, mode)


def write_stats(stats_output: str, stats: Dict[str, int], index_counts: Counter,
                unassigned_indexes: Counter):
    with open(stats_output, 'w', newline='') as handle:
        writer = csv.writer(handle)
        writer.writerow(["Metric", "Value"])
        for metric, value in stats.items():
            writer.writerow([metric, value])
        writer.writerow([])
        writer.writerow(["Index", "ReadCount"])
        for label, count in index_counts.items():
            writer.writerow([label, count])
        writer.writerow([])
        writer.writerow(["Unassigned index", "Read count"])
        for sample_index, count in unassigned_indexes.most_common():
            writer.writerow([sample_index, count])


def parse_indexes(index_args: List[str]) -> Dict[str, str]:
    """Parse 'label:SEQ' or bare 'SEQ' arguments; bare sequences are numbered from 1."""
    index_dict = {}
    for i, arg in enumerate(index_args, 1):
        if ':' in arg:
            label, sequence = arg.split(':', 1)
        else:
            label, sequence = str(i), arg
        if label in index_dict:
            raise ValueError(f"Duplicate sample label '{label}'")
        index_dict[label] = sequence.upper()
    return index_dict


def parse_sample_sheet(sample_sheet: str) -> Dict[str, str]:
    """Read a two-column (label, index) tab or comma separated sample sheet."""
    index_dict = {}
    with open(sample_sheet, 'r', newline='') as handle:
        for lineno, line in enumerate(handle, 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            fields = line.split('\t') if '\t' in line else line.split(',')
            if len(fields) != 2:
                raise ValueError(f"{sample_sheet}:{lineno}: expected 'label<TAB>index' but got '{line}'")
            label, sequence = (field.strip() for field in fields)
            if label in index_dict:
                raise ValueError(f"{sample_sheet}:{lineno}: duplicate sample label '{label}'")
            index_dict[label] = sequence.upper()
    return index_dict


def validate_indexes(index_dict: Dict[str, str], linker_spec: LinkerSpec):
    """Check the sample indexes fit the sample index positions of the linker."""
    if linker_spec.sample_index_length == 0:
        if index_dict:
            raise ValueError(f"Linker ({linker_spec}) has no sample index bases but indexes were given")
        return
    if not index_dict:
        raise ValueError(f"Linker ({linker_spec}) has sample index bases but no indexes were given")

    seen = {}
    for label, sequence in index_dict.items():
        if label in (UNASSIGNED, TOO_SHORT):
            raise ValueError(f"Sample label '{label}' is reserved for reads that are not assigned to a sample")
        if len(sequence) != linker_spec.sample_index_length:
            raise ValueError(f"Index {label}={sequence} has length {len(sequence)}, "
                             f"linker sample index length is {linker_spec.sample_index_length}")
        bad = set(sequence) - INDEX_BASES
        if bad:
            raise ValueError(f"Index {label}={sequence} contains invalid bases {''.join(sorted(bad))}")
        if sequence in seen:
            raise ValueError(f"Index {sequence} used by both {seen[sequence]} and {label}")
        seen[sequence] = label


def setup_logging(results_dir, input_file, verbose):
    """Set up logging based on input file name and verbosity."""
    input_file = os.path.basename(input_file).replace('.fastq.gz', '').replace('.fastq', '')
    log_filename = f"output.{input_file}.log"
    log_filename = os.path.join(results_dir, log_filename)
    logging.basicConfig(
        filename=log_filename,
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def log_message(message, level=logging.INFO):
    logging.log(level, message)


def main(argv=None):

    parser = argparse.ArgumentParser(
        description="Split linker bases (UMI and sample index) from FASTQ reads and demultiplex by sample index.")
    parser.add_argument("-i", "--input_file", required=True, help="Input FASTQ file (optionally gzipped)")
    parser.add_argument("-res", "--results-dir", default=None,
                        help="Directory to store output files (default is basename of input file)")
    parser.add_argument("--prefix", default="",
                        help="Linker prefix spec, N for UMI and I for sample index bases (e.g. NNNNNN)")
    parser.add_argument("--suffix", default="",
                        help="Linker suffix spec, N for UMI and I for sample index bases (e.g. IIIII)")
    parser.add_argument("--indexes", nargs='+',
                        help="Sample indexes as 'label:SEQ' or 'SEQ' (numbered from 1)")
    parser.add_argument("--sample-sheet", default=None,
                        help="Tab separated file of sample label and index sequence")
    parser.add_argument("-m", "--mismatches", type=int, default=0,
                        help="Mismatches allowed when assigning sample indexes, default is 0")
    parser.add_argument("--umi-separator", default="_",
                        help="Separator between read name and UMI, default is '_'")
    parser.add_argument("--processed-output", required=True,
                        help="Output prefix for reads assigned to a sample")
    parser.add_argument("--unassigned-output", required=True,
                        help="Output file for reads with an unknown sample index")
    parser.add_argument("--short-output", required=True,
                        help="Output file for reads shorter than the linker")
    parser.add_argument("--stats-output", required=True, help="Output statistics file")
    parser.add_argument("--chunk_size", type=int, default=1000, help="Number of reads per chunk")
    parser.add_argument("--num_workers", type=int, default=4,
                        help="Number of parallel workers (CPUs), default is 4")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable detailed logging")
    args = parser.parse_args(argv)

    if args.indexes and args.sample_sheet:
        parser.error("use either --indexes or --sample-sheet, not both")

    try:
        linker_spec = LinkerSpec.parse(args.prefix, args.suffix)
        if args.sample_sheet:
            index_dict = parse_sample_sheet(args.sample_sheet)
        else:
            index_dict = parse_indexes(args.indexes or [])
        validate_indexes(index_dict, linker_spec)
    except (ValueError, OSError) as e:
        parser.error(str(e))

    # Set the results directory
    if args.results_dir is None:
        args.results_dir = os.path.basename(args.input_file).replace('.fastq.gz', '').replace('.fastq', '')

    os.makedirs(args.results_dir, exist_ok=True)

    args.processed_output = os.path.join(args.results_dir, args.processed_output)
    args.unassigned_output = os.path.join(args.results_dir, args.unassigned_output)
    args.short_output = os.path.join(args.results_dir, args.short_output)
    args.stats_output = os.path.join(args.results_dir, args.stats_output)

    setup_logging(args.results_dir, args.input_file, args.verbose)
    start_time = time.time()
    log_message("Script started.")
    log_message(f"Starting read processing with {args.num_workers} workers and chunk size {args.chunk_size}")
    log_message(f"Linker {linker_spec}: UMI length {linker_spec.umi_length}, "
                f"sample index length {linker_spec.sample_index_length}, samples {index_dict}, "
                f"mismatches {args.mismatches}.")

    splitter = FastqSplitter(linker_spec, index_dict, args.mismatches, args.umi_separator)
    splitter.split_reads(
        args.input_file,
        args.processed_output,
        args.unassigned_output,
        args.short_output,
        args.stats_output,
        args.num_workers,
        args.chunk_size
    )

    total_time = time.time() - start_time

    log_message(f"Outputs written to {args.results_dir}/")
    log_message("Script completed.")
    log_message(f"Total execution time: {total_time:.2f} seconds.")


if __name__ == "__main__":
    main()

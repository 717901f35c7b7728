import os
import argparse
from collections import Counter

METRICS_HEADER = "Metric,Value"
INDEX_HEADER = "Index,ReadCount"
UNASSIGNED_HEADER = "Unassigned index,Read count"


def find_stats_files(input_dir, sample_name):
    stats_files = []
    for root, dirs, files in os.walk(input_dir):
        for file in files:
            if file.startswith(sample_name + ".") and file.endswith(".stats.csv"):
                stats_files.append(os.path.join(root, file))
    return sorted(stats_files)


def read_stats(stats_file):
    """Read the three sections of a linker stats file into Counters."""
    with open(stats_file, 'r') as f:
        lines = [line.strip() for line in f if line.strip()]  # Strip and remove blank lines

    sections = {METRICS_HEADER: Counter(), INDEX_HEADER: Counter(), UNASSIGNED_HEADER: Counter()}
    current = None
    for line in lines:
        if line in sections:
            current = sections[line]
            continue
        if current is None:
            raise ValueError(f"{stats_file}: data line before any section header: '{line}'")
        key, value = line.rsplit(",", 1)
        current[key] += int(value)

    return sections[METRICS_HEADER], sections[INDEX_HEADER], sections[UNASSIGNED_HEADER]


def merge_stats_by_linker(input_dir, output_file):

    sample_name = os.path.basename(output_file).replace('.linker_stats.csv', '')

    merged_metrics = Counter()
    merged_index_counts = Counter()
    merged_unassigned = Counter()

    for stats_file in find_stats_files(input_dir, sample_name):
        metrics, index_counts, unassigned = read_stats(stats_file)
        # Counter.update adds counts, keeping zero-count entries
        merged_metrics.update(metrics)
        merged_index_counts.update(index_counts)
        merged_unassigned.update(unassigned)

    with open(output_file, "w") as f:
        f.write(METRICS_HEADER + "\n")
        for k, v in merged_metrics.items():
            f.write(f"{k},{v}\n")
        f.write("\n")

        f.write(INDEX_HEADER + "\n")
        for k, v in merged_index_counts.items():
            f.write(f"{k},{v}\n")
        f.write("\n")

        f.write(UNASSIGNED_HEADER + "\n")
        for k, v in merged_unassigned.most_common():
            f.write(f"{k},{v}\n")

    return merged_metrics, merged_index_counts, merged_unassigned


def main(argv=None):
    parser = argparse.ArgumentParser(description="Merge linker split stats from all chunks into one file.")
    parser.add_argument("--input-dir", required=True, help="Directory containing individual chunk stats CSV files.")
    parser.add_argument("--output-file", required=True, help="Output file (<sample>.linker_stats.csv).")

    args = parser.parse_args(argv)
    merge_stats_by_linker(args.input_dir, args.output_file)


if __name__ == "__main__":
    main()

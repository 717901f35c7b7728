#!/usr/bin/env python3

'''
fastx-split - remove UMI and sample index linkers from FastQ reads
=================================================================

:Tags: FastQ, UMI, demultiplexing

To use a specific workflow, type::

    fastx-split <workflow> [workflow options] [workflow arguments]

For this message and a list of available keywords type::

    fastx-split --help

To get help for a specific workflow, type::

    fastx-split <workflow> --help
'''

import os
import sys
import re
import glob
import importlib
import importlib.util
import fastx_split

HELPERS = {
    "linker_split": "fastq_splitter_by_linker",
    "merge_stats": "merge_linker_stats",
}


def print_list_in_columns(l, ncolumns):
    if not l:
        return ""

    max_width = max(len(x) for x in l) + 3
    n = len(l) // ncolumns + (len(l) % ncolumns > 0)
    columns = [l[i * n:(i + 1) * n] for i in range(ncolumns)]

    for i in range(len(columns)):
        while len(columns[i]) < n:
            columns[i].append("")

    rows = zip(*columns)
    pattern = " ".join([f"%-{max_width}s"] * ncolumns)
    return "\n".join([pattern % row for row in rows])


def dynamic_import_and_run(filepath, modulename, args):
    spec = importlib.util.spec_from_file_location(modulename, filepath)
    if spec is None or spec.loader is None:
        print(f"Could not load module from {filepath}")
        sys.exit(1)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    if hasattr(module, 'main'):
        return module.main(args)
    else:
        print(f"Module {modulename} does not have a main() function.")
        sys.exit(1)


def main(argv=None):
    if argv is None:
        argv = sys.argv

    base_path = os.path.dirname(os.path.abspath(fastx_split.__file__))

    if len(argv) == 1 or argv[1] in ("--help", "-h"):
        # Show help and available pipelines
        pipelines = glob.glob(os.path.join(base_path, "pipeline_*.py"))

        print("Usage: fastx-split <command>\n")
        print("Available pipeline commands:\n")
        print(print_list_in_columns(
            sorted([os.path.basename(p)[len("pipeline_"):-len(".py")] for p in pipelines]), 2
        ))
        print("\nSpecial helper commands:\n")
        print(print_list_in_columns(sorted(HELPERS), 2))
        return

    if argv[1] == "--version":
        print(fastx_split.__version__)
        return

    command = re.sub("-", "_", argv[1])
    args = argv[2:]

    if command in HELPERS:
        # Imported by package name so worker processes can unpickle its classes
        module = importlib.import_module(f"fastx_split.python.{HELPERS[command]}")
        return module.main(args)

    pipeline_path = os.path.join(base_path, f"pipeline_{command}.py")

    if os.path.exists(pipeline_path):
        # cgatcore expects the pipeline name in argv[0]
        return dynamic_import_and_run(pipeline_path, f"pipeline_{command}", [pipeline_path] + args)
    else:
        print(f"Error: command '{command}' not found.")
        print("Use '--help' to list available commands.")
        sys.exit(1)


if __name__ == "__main__":
    sys.exit(main())

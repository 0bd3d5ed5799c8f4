"""codecgen command line.

Input:  a directory of Python modules and the name of a @dataclass record.
Output: a Python module binding JSON and YAML marshaling functions onto it.
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Optional, Sequence

from .config import DEFAULT_CONFIG
from .errors import GenerationError
from .generator import extract_existing_digest, generate
from .loader import load_directory


def source_label(directory: pathlib.Path) -> str:
    try:
        return str(directory.resolve().relative_to(pathlib.Path.cwd().resolve()))
    except ValueError:
        return str(directory.resolve())


def run(args: argparse.Namespace) -> int:
    """Generate the codec module for args.type and write it unless it is unchanged.

    The digest in the header covers the generated body, not the source files, so
    edits to the input that do not change the output leave the file alone.
    """
    directory = pathlib.Path(args.dir)
    try:
        loader = load_directory(directory)
    except GenerationError as e:
        print(e.describe(), file=sys.stderr)
        return 1

    result = generate(loader, args.type, args.field_override, source_label(directory), DEFAULT_CONFIG)
    for warning in result.warnings:
        print(warning, file=sys.stderr)
    if result.error is not None:
        print(result.error.describe(), file=sys.stderr)
        return 1
    rendered = result.code

    if args.output == "-":
        if args.check:
            print("error: --check needs an output file", file=sys.stderr)
            return 1
        sys.stdout.write(rendered)
        return 0

    out_path = pathlib.Path(args.output)
    if args.check:
        if not out_path.exists():
            print(f"{out_path} is missing (run generator)", file=sys.stderr)
            return 1
        existing = out_path.read_text(encoding="utf-8")
        if existing != rendered:
            print(f"{out_path} is out of date (run generator)", file=sys.stderr)
            return 1
        print(f"up-to-date: {out_path}")
        return 0

    if out_path.exists():
        existing = out_path.read_text(encoding="utf-8")
        old_digest = extract_existing_digest(existing)
        new_digest = extract_existing_digest(rendered)
        if old_digest and new_digest and old_digest == new_digest:
            print(f"unchanged: {out_path}")
            return 0
        if existing == rendered:
            print(f"unchanged: {out_path}")
            return 0

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(rendered, encoding="utf-8")
    print(f"generated: {out_path}")
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=DEFAULT_CONFIG.program_name,
        description="Generate JSON and YAML marshaling functions for a dataclass record",
    )
    parser.add_argument("--dir", default=".", help="Directory holding the record's module")
    parser.add_argument("--type", required=True, help="Record type to generate marshaling code for")
    parser.add_argument("--field-override", dest="field_override", default="", help="Record to take field type replacements from")
    parser.add_argument("--out", dest="output", default="-", help="Output file ('-' for stdout)")
    parser.add_argument("--check", action="store_true", help="Check output is up to date")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log generator decisions")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    return run(args)

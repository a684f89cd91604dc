"""Command-line HEIC/HEIF to JPEG conversion.

    heic-convert INPUT OUTPUT          convert one file
    heic-convert [--input-dir DIR]     convert every .heic/.heif file in DIR
"""

from __future__ import annotations

import argparse
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from heic_converter.core.utils import (
    DEFAULT_JPEG_QUALITY,
    get_file_size_mb,
    has_accepted_extension,
    normalize_quality,
)
from heic_converter.engine import codec as heic_codec
from heic_converter.engine.convert import (
    BatchResult,
    ConversionFailure,
    UploadedFile,
    convert_batch,
    convert_one,
)

LINE_WIDTH = 60


def _divider(char: str = "-") -> str:
    return char * LINE_WIDTH


def find_heic_files(input_dir: Path) -> List[Path]:
    return sorted(
        path for path in input_dir.iterdir()
        if path.is_file() and has_accepted_extension(path.name)
    )


def _as_upload(path: Path) -> UploadedFile:
    return UploadedFile(path=path, original_name=path.name, size=path.stat().st_size)


def convert_single(input_file: Path, output_file: Path, quality: int) -> int:
    print(f"Converting single file: {input_file} -> {output_file}")
    if not input_file.is_file():
        print(f"ERROR: {input_file} not found")
        return 1

    output_file.parent.mkdir(parents=True, exist_ok=True)
    # Existing files beside output_file are never overwritten.
    with tempfile.TemporaryDirectory(dir=output_file.parent, prefix=".heic-convert-") as staging:
        outcome = convert_one(_as_upload(input_file), Path(staging), quality, codec=heic_codec.convert)
        if isinstance(outcome, ConversionFailure):
            print(f"ERROR: {outcome.message}")
            return 1
        outcome.output_path.replace(output_file)
    print(f"OK: {output_file.name} ({get_file_size_mb(output_file):.2f}MB, {outcome.elapsed_ms}ms)")
    return 0


def print_summary(result: BatchResult, output_dir: Path) -> None:
    print(_divider("="))
    print("CONVERSION SUMMARY".center(LINE_WIDTH))
    print(_divider("="))
    print(f"{'Converted':<16}: {result.succeeded} files")
    print(f"{'Failed':<16}: {result.total - result.succeeded} files")
    print(f"{'Output dir':<16}: {output_dir}")
    for error in result.errors:
        print(f"  - {error['file']}: {error['message']}")


def convert_directory(input_dir: Path, output_dir: Path, quality: int) -> int:
    print(f"Input directory : {input_dir}")
    print(f"Output directory: {output_dir}")
    print(f"JPEG quality    : {quality}")
    if not input_dir.is_dir():
        print(f"ERROR: {input_dir} is not a directory")
        return 1

    files = find_heic_files(input_dir)
    if not files:
        print("No HEIC/HEIF files found in input directory")
        return 0

    print(f"Found {len(files)} HEIC/HEIF files to convert")
    print(_divider())
    output_dir.mkdir(parents=True, exist_ok=True)
    result = convert_batch(
        [_as_upload(path) for path in files], None, output_dir, quality, codec=heic_codec.convert
    )
    print_summary(result, output_dir)
    return 0 if result.succeeded == result.total else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Convert HEIC/HEIF images to JPEG.")
    parser.add_argument("input", nargs="?", help="Single input file")
    parser.add_argument("output", nargs="?", help="Output JPEG path for a single file")
    parser.add_argument("--input-dir", default=os.environ.get("INPUT_DIR", "/app/input"), help="Directory to scan")
    parser.add_argument("--output-dir", default=os.environ.get("OUTPUT_DIR", "/app/output"), help="Directory for JPEGs")
    parser.add_argument(
        "--quality",
        default=os.environ.get("JPEG_QUALITY"),
        help=f"JPEG quality 1-100 (default {DEFAULT_JPEG_QUALITY})",
    )
    args = parser.parse_args(argv)

    quality = normalize_quality(args.quality)
    if args.input and not args.output:
        parser.error("OUTPUT is required when INPUT is given")
    if args.input:
        return convert_single(Path(args.input), Path(args.output), quality)
    return convert_directory(Path(args.input_dir), Path(args.output_dir), quality)


if __name__ == "__main__":
    raise SystemExit(main())

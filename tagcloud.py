"""CLI entrypoint for generating a tag cloud HTML file from a text document."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from tagcloud_core import (
    DEFAULT_CLASS_PREFIX,
    DEFAULT_STYLESHEET,
    DEFAULT_TOP_N,
    TagCloudConfig,
    TagCloudError,
    generate_tag_cloud,
    words_to_json,
    write_output,
)


def non_negative_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return value


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate an HTML tag cloud of the most frequent words in a text file.")
    parser.add_argument("source_path", help="Path to the input text file.")
    parser.add_argument("output_path", help="Destination HTML file path.")
    parser.add_argument(
        "-n",
        "--top-n",
        type=non_negative_int,
        default=DEFAULT_TOP_N,
        help="Number of words to include in the tag cloud.",
    )
    parser.add_argument(
        "--stylesheet",
        default=DEFAULT_STYLESHEET,
        help="Stylesheet href referenced by the generated page.",
    )
    parser.add_argument(
        "--class-prefix",
        default=DEFAULT_CLASS_PREFIX,
        help="Prefix of the font-size CSS classes (default gives f11..f48).",
    )
    parser.add_argument("--encoding", default="utf-8", help="Encoding of the input text file.")
    parser.add_argument(
        "--dump-json",
        type=Path,
        default=None,
        help="Optional path to dump the ranked word list as JSON alongside the HTML output.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every pipeline stage.")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.verbose)

    config = TagCloudConfig(
        source_path=Path(args.source_path),
        output_path=Path(args.output_path),
        top_n=args.top_n,
        stylesheet=args.stylesheet,
        class_prefix=args.class_prefix,
        encoding=args.encoding,
    )

    try:
        result = generate_tag_cloud(config)
        if args.dump_json:
            write_output(args.dump_json, words_to_json(result.words))
    except TagCloudError as exc:
        raise SystemExit(str(exc))

    print(result.output_path)


if __name__ == "__main__":
    main()

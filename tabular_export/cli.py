#!/usr/bin/env python3
"""
Command line entry point: export the result of a query to a CSV file.

    tabular-export "select name, price from products where price > 20" \
        --column name:Name --column price:Price
"""

import argparse
import asyncio
import logging
import sys

import sentry_sdk

from tabular_export import config
from tabular_export.core.exceptions import ExportError, InvalidHeaderError
from tabular_export.core.models import HeaderSpec
from tabular_export.core.resolver import get_query
from tabular_export.core.sentry import get_sentry_kwargs
from tabular_export.core.version import get_app_version
from tabular_export.export import generate_csv

logger = logging.getLogger("tabular_export")


def parse_column(value: str) -> tuple[str, str]:
    key, _, label = value.partition(":")
    if not key:
        raise argparse.ArgumentTypeError(f"'{value}' should look like KEY or KEY:LABEL")
    return key, label or key


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabular-export",
        description="Export the result of a query to a CSV file, by chunks.",
    )
    parser.add_argument(
        "query",
        help="serialized query (products?select=name,price)"
        " or expression (select name from products)",
    )
    parser.add_argument(
        "-c",
        "--column",
        dest="columns",
        action="append",
        type=parse_column,
        default=[],
        metavar="KEY[:LABEL]",
        help="output column, in order; the label defaults to the key",
    )
    parser.add_argument("--page-size", type=int, default=None, help="rows read at once")
    parser.add_argument("--output-dir", default=None, help="directory of the exported file")
    parser.add_argument("--endpoint", default=None, help="PostgREST endpoint")
    parser.add_argument(
        "--check", action="store_true", help="only resolve the query and print it serialized"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=get_app_version())
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config.SENTRY_DSN:
        sentry_sdk.init(**get_sentry_kwargs())
    if args.endpoint:
        config.override(PGREST_ENDPOINT=args.endpoint)

    if args.check:
        try:
            print(get_query(args.query).serialize())
        except ExportError as e:
            logger.error(str(e))
            return 1
        return 0

    if not args.columns:
        parser.error("at least one --column is required to export")
    try:
        header_spec = HeaderSpec.from_pairs(args.columns)
    except InvalidHeaderError as e:
        parser.error(str(e))

    try:
        path = asyncio.run(
            generate_csv(
                args.query,
                header_spec,
                page_size=args.page_size,
                directory=args.output_dir,
            )
        )
    except ExportError as e:
        logger.error(str(e))
        return 1
    except ValueError as e:
        # page size out of bounds
        parser.error(str(e))
    print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())

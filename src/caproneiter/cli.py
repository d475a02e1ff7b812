"""
CaproneIter CLI — Command-Line Interface
========================================

Command-line interface for walking large result sets.

Usage:
    caproneiter pages myindex --size 500
    caproneiter pages myindex --search-after --sort year:desc
    caproneiter export myindex --query "quantum mechanics" > docs.jsonl
    caproneiter --hosts https://es1:9200 export myindex --limit 1000
"""

import argparse
import json
import logging
import sys
import time
from typing import Any, Dict, List, Optional

from .core import SearchHelpers
from .exceptions import CaproneIterError
from .request import DEFAULT_SCROLL, DEFAULT_TIEBREAKER, PageOptions, PageRequest


def get_hosts(args) -> List[str]:
    """Extract hosts from args."""
    if args.hosts:
        return args.hosts.split(",")
    return ["http://localhost:9200"]


def parse_sort(values: Optional[List[str]]) -> Optional[List[Dict[str, Any]]]:
    """Turn repeated ``field:order`` flags into a sort clause."""
    if not values:
        return None
    sort = []
    for value in values:
        name, _, order = value.partition(":")
        sort.append({name: {"order": order or "asc"}})
    return sort


def build_request(args) -> PageRequest:
    query = None
    if args.query:
        query = {
            "query_string": {
                "query": args.query,
                "default_operator": "AND"
            }
        }
    return PageRequest(
        args.index,
        query=query,
        sort=parse_sort(args.sort),
        size=args.size
    )


def build_options(args) -> PageOptions:
    return PageOptions(
        scroll=args.scroll,
        search_after=args.search_after,
        wait_ms=args.wait_ms,
        max_retries=args.max_retries,
        tiebreaker=args.tiebreaker
    )


def get_helpers(args) -> SearchHelpers:
    return SearchHelpers.from_hosts(
        hosts=get_hosts(args),
        api_key=args.api_key
    )


def cmd_pages(args, helpers: SearchHelpers):
    """Print one line per page."""
    start = time.time()
    total_hits = 0

    with helpers.paginate(build_request(args), build_options(args)) as pages:
        for number, page in enumerate(pages, 1):
            total_hits += len(page)
            print(f"page {number:>6}  {len(page):>8,} hits  [{pages.kind}]")
            if args.limit and number >= args.limit:
                break

    elapsed_ms = (time.time() - start) * 1000
    print(f"\nTotal hits: {total_hits:,} (in {elapsed_ms:.1f}ms)")


def cmd_export(args, helpers: SearchHelpers):
    """Write every document as a JSON line."""
    docs = helpers.documents(build_request(args), build_options(args))
    try:
        for count, doc in enumerate(docs, 1):
            sys.stdout.write(json.dumps(doc, ensure_ascii=False) + "\n")
            if args.limit and count >= args.limit:
                break
    finally:
        docs.close()


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="caproneiter",
        description="CaproneIter — scroll and search_after pagination for Elasticsearch"
    )

    # Global options
    parser.add_argument(
        "--hosts",
        help="Elasticsearch hosts (comma-separated)",
        default=None
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        help="Elasticsearch API key",
        default=None
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log page fetches and cursor releases"
    )

    # Shared pagination options
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("index", help="Index name (comma-separated for several)")
    common.add_argument("--query", help="query_string query (default: match all)")
    common.add_argument("--size", type=int, help="Hits per page")
    common.add_argument("--sort", action="append", help="Sort as field:order (repeatable)")
    common.add_argument("--scroll", default=DEFAULT_SCROLL, help="Scroll cursor lifetime")
    common.add_argument("--search-after", action="store_true", help="Use search_after instead of scroll")
    common.add_argument("--tiebreaker", default=DEFAULT_TIEBREAKER, help="Unique sort field for search_after")
    common.add_argument("--wait-ms", type=int, default=5000, help="Delay between 429 retries")
    common.add_argument("--max-retries", type=int, default=3, help="429 retries per page")
    common.add_argument("--limit", type=int, help="Stop after N pages (pages) or documents (export)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    subparsers.add_parser("pages", parents=[common], help="Walk pages and print their sizes")
    subparsers.add_parser("export", parents=[common], help="Export documents as JSON lines")

    # Parse and dispatch
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if args.command not in ("pages", "export"):
        parser.print_help()
        return

    helpers = get_helpers(args)
    try:
        if args.command == "pages":
            cmd_pages(args, helpers)
        else:
            cmd_export(args, helpers)
    except CaproneIterError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        helpers.close()


if __name__ == "__main__":
    main()

#!/usr/bin/env python
"""Issue a single REST call and print the outcome as JSON.

The client is configured from the environment (``API_BASE_URL``,
``API_PREFIX``, ``API_*_TIMEOUT``) and uses the default credential store
(``CREDENTIAL_BACKEND``).  Usage::

    python scripts/call_api.py GET /orders --query page=1 --query status=open
    python scripts/call_api.py POST /orders --json '{"product_id": "42"}'

The exit status is 0 when the outcome is a success and 1 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Tuple

from restcaller import ApiClient, ClientSettings, get_default_credential_store

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Call a REST endpoint through restcaller")
    parser.add_argument("method", type=str.upper, choices=METHODS, help="HTTP method")
    parser.add_argument("path", help="Endpoint path relative to API_BASE_URL/API_PREFIX")
    parser.add_argument("--json", dest="body", default=None, help="JSON request body")
    parser.add_argument(
        "--query",
        "-q",
        action="append",
        default=[],
        help="Query parameter as key=value; may be repeated.",
    )
    parser.add_argument("--token", default=None, help="Bearer token overriding the stored one")
    return parser.parse_args(argv)


def _query_pairs(items: List[str]) -> List[Tuple[str, str]]:
    pairs = []
    for item in items:
        key, sep, value = item.partition("=")
        if not sep:
            raise SystemExit(f"invalid --query {item!r}; expected key=value")
        pairs.append((key, value))
    return pairs


async def run(args: argparse.Namespace) -> int:
    body = json.loads(args.body) if args.body else None
    store = get_default_credential_store()
    async with ApiClient(store, ClientSettings.from_env()) as client:
        operation = getattr(client, args.method.lower())
        outcome = await operation(args.path, query=_query_pairs(args.query), body=body, token=args.token)
    print(json.dumps(outcome.model_dump(), indent=2, default=str))
    return 0 if outcome.is_success else 1


def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    sys.exit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()

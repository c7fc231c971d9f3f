"""Terminal client that reuses the in-process search and sync logic."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Iterable

from storefront_search.container import get_search_service, get_suggestion_engine, get_sync_controller
from storefront_search.exceptions import SearchEngineError
from storefront_search.query_builder import build_search_query
from storefront_search.sync import SyncAction

MAX_RESULTS = 100
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


async def perform_query(query: str, sort: str = "relevance") -> dict:
    search_query = build_search_query(query, sort=sort, limit=MAX_RESULTS, with_facets=False)
    page = await get_search_service().browse(search_query)
    return {"results": page.products, "took_ms": page.took_ms, "total": page.total, "error": page.error}


def pretty_print_response(query: str, payload: dict) -> None:
    results = payload.get("results", [])
    took = float(payload.get("took_ms", 0))
    color = GREEN if took < 200 else RED
    took_label = f"{color}{took:.1f} ms{RESET}"
    print(f"Query: {query} | results: {len(results)}/{payload.get('total', 0)} | took: {took_label}")
    if payload.get("error"):
        print(f"  {RED}error: {payload['error']}{RESET}")
    for idx, item in enumerate(results[:MAX_RESULTS], start=1):
        score = item.get("score")
        score_repr = f"{score:.2f}" if isinstance(score, (int, float)) else "-"
        print(
            f"  {idx:02d}. score={score_repr} | {item.get('brand')} | "
            f"{item.get('name')} | {item.get('price')}"
        )


def interactive_shell() -> None:
    print("Interactive product search. Type 'exit' to quit.")
    while True:
        try:
            query = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not query:
            continue
        if query.lower() in {"exit", "quit"}:
            return
        response = asyncio.run(perform_query(query))
        pretty_print_response(query, response)


def batch_mode(file_path: Path) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            query = line.strip()
            if not query:
                continue
            response = asyncio.run(perform_query(query))
            pretty_print_response(query, response)


async def print_suggestions(prefix: str, category: str | None, limit: int) -> None:
    result = await get_suggestion_engine().suggest(prefix, category=category, limit=limit)
    print(f"Suggestions for {prefix!r}: {len(result.suggestions)}")
    for item in result.suggestions:
        print(f"  [{item.type.value:<10}] {item.text} (score={item.score:.2f}, weight={item.weight})")
    if result.error:
        print(f"  {RED}error: {result.error}{RESET}")


async def print_status() -> None:
    status = await get_sync_controller().status()
    print(json.dumps(status.to_dict(), indent=2))


async def run_sync(action: str, product_id: str | None, updates: str | None) -> bool:
    parsed_updates = json.loads(updates) if updates else None
    result = await get_sync_controller().run(action, product_id=product_id, updates=parsed_updates)
    print(json.dumps(result.to_dict(), indent=2))
    return result.success


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the storefront search service")
    parser.add_argument("--batch", type=Path, help="File with queries to execute line by line")
    sub = parser.add_subparsers(dest="command")

    search_cmd = sub.add_parser("search", help="Run a product search")
    search_cmd.add_argument("query")
    search_cmd.add_argument("--sort", default="relevance")

    suggest_cmd = sub.add_parser("suggest", help="Show autocomplete suggestions")
    suggest_cmd.add_argument("prefix", nargs="?", default="")
    suggest_cmd.add_argument("--category")
    suggest_cmd.add_argument("--limit", type=int, default=5)

    sub.add_parser("status", help="Compare index and catalog counts")

    sync_cmd = sub.add_parser("sync", help="Run an index synchronization action")
    sync_cmd.add_argument("action", choices=[action.value for action in SyncAction])
    sync_cmd.add_argument("--product-id")
    sync_cmd.add_argument("--updates", help="JSON object with product field updates")

    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        if args.batch:
            batch_mode(args.batch)
            return 0
        if args.command == "search":
            pretty_print_response(args.query, asyncio.run(perform_query(args.query, args.sort)))
            return 0
        if args.command == "suggest":
            asyncio.run(print_suggestions(args.prefix, args.category, args.limit))
            return 0
        if args.command == "status":
            asyncio.run(print_status())
            return 0
        if args.command == "sync":
            return 0 if asyncio.run(run_sync(args.action, args.product_id, args.updates)) else 1
    except SearchEngineError as exc:
        print(f"{RED}{exc}{RESET}", file=sys.stderr)
        return 2
    interactive_shell()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

"""
CLI entrypoint for aggregating answered prompts.

Usage (from repo root):

    HARDCOVER_API_KEY=... python -m hardcover_prompts.run_prompts
    HARDCOVER_API_KEY=... python -m hardcover_prompts.run_prompts --username someone

This will:
- Resolve the account (current user by default)
- Fetch its answered prompts, one per prompt
- Print each prompt immediately, then again as its books arrive
- Write data/answered_prompts.json
"""

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from hardcover_prompts.config import AppConfig, HardcoverCredentials, get_config
from hardcover_prompts.models import AggregationResult, AnswerUpdate, Identity
from hardcover_prompts.orchestrator import AggregationOrchestrator


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Aggregate Hardcover answered prompts.")
    who = parser.add_mutually_exclusive_group()
    who.add_argument("--user-id", type=int, help="Numeric Hardcover account id.")
    who.add_argument("--username", help="Hardcover username (with or without '@').")
    parser.add_argument("--output", type=Path, help="Where to write the JSON result.")
    parser.add_argument("--max-concurrency", type=int, help="Simultaneous page fetches.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    args = parser.parse_args(argv)
    if args.username is not None and not args.username.strip().lstrip("@"):
        parser.error("--username must not be empty")
    return args


def _identity_from_args(args: argparse.Namespace) -> Identity:
    if args.user_id is not None:
        return Identity.for_account(args.user_id)
    if args.username is not None:
        return Identity.for_username(args.username)
    return Identity.current()


def print_update(update: AnswerUpdate) -> None:
    answer = update.answer
    title = answer.summary.title
    if update.phase == "skeleton":
        print(f"[prompts] #{update.index + 1} {title}", flush=True)
        return

    if answer.books is None:
        status = answer.enrichment_status.value if answer.enrichment_status else "unknown"
        print(f"[prompts] #{update.index + 1} {title}: no books ({status})", flush=True)
        return

    titles = ", ".join(book.title for book in answer.books) or "(none)"
    print(f"[prompts] #{update.index + 1} {title}: {titles}", flush=True)


def save_result(result: AggregationResult, path: Path) -> None:
    """
    Serialize the aggregation into JSON.

    Shape:

    {
        "status": "ok",
        "profile": {...UserProfile...},
        "answers": [
            {"summary": {...}, "books": [...], "avatar_url": ..., "enrichment_status": ...},
            ...
        ]
    }
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(result), f, ensure_ascii=False, indent=2)

    print(f"[prompts] Wrote {len(result.answers)} answered prompts to: {path}")


def run(argv: Optional[List[str]] = None, cfg: Optional[AppConfig] = None) -> AggregationResult:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = cfg or get_config()
    if args.max_concurrency and args.max_concurrency > 0:
        cfg.enrichment.max_concurrency = args.max_concurrency

    credentials = HardcoverCredentials.from_env()
    if credentials.is_empty:
        print("[prompts] HARDCOVER_API_KEY is not set; nothing will be fetched.")

    orchestrator = AggregationOrchestrator.from_config(credentials=credentials, cfg=cfg)
    identity = _identity_from_args(args)

    target = "the current user" if identity.is_current_user else str(identity)
    print(f"[prompts] Aggregating answered prompts for {target}...")
    result = orchestrator.run(identity, on_update=print_update)
    print(f"[prompts] Done: status={result.status.value}, prompts={len(result.answers)}")

    save_result(result, args.output or cfg.paths.prompts_output_path)
    return result


def main(argv: Optional[List[str]] = None) -> None:
    run(argv)


if __name__ == "__main__":
    main()

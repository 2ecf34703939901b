"""
run_scoring.py: score one brand's backlog directly (without Celery)

Runs a single BacklogProcessor pass against the configured database:
  1. Sweep items stuck in processing for the brand
  2. Claim claimable backlog items (newest first)
  3. Analyze → extract positions → store sentiment
  4. Print the run summary as JSON

Usage:
    python run_scoring.py <brand_id> <customer_id> [--limit 50] [--since 2026-01-01T00:00:00+00:00]
    python run_scoring.py --check-ollama
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from uuid import UUID

from visibility_scoring.backends.registry import build_backends
from visibility_scoring.core.config import settings
from visibility_scoring.core.errors import ConfigurationError
from visibility_scoring.core.logging import setup_logging
from visibility_scoring.db.postgres import make_engine, make_session_factory
from visibility_scoring.pipeline.processor import BacklogProcessor
from visibility_scoring.store.sql import SqlResultStore


async def score(brand_id: UUID, customer_id: UUID, since: datetime | None, limit: int | None) -> int:
    engine = make_engine()
    try:
        processor = BacklogProcessor(SqlResultStore(make_session_factory(engine)), build_backends())
        try:
            summary = await processor.process_backlog(brand_id, customer_id, since=since, limit=limit)
        except ConfigurationError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return 2
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
        return 1 if summary.errors else 0
    finally:
        await engine.dispose()


async def check_ollama() -> int:
    backends = build_backends()
    if backends.serial is None:
        print("Ollama backend is disabled (OLLAMA_ENABLED=false)")
        return 1
    healthy = await backends.serial.check_health()
    print(f"Ollama at {settings.ollama_url} ({settings.ollama_model}): {'OK' if healthy else 'UNAVAILABLE'}")
    return 0 if healthy else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Score a brand's backlog once")
    parser.add_argument("brand_id", nargs="?", type=UUID)
    parser.add_argument("customer_id", nargs="?", type=UUID)
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--since", type=datetime.fromisoformat, default=None)
    parser.add_argument("--check-ollama", action="store_true")
    args = parser.parse_args()

    setup_logging()
    if args.check_ollama:
        return asyncio.run(check_ollama())
    if args.brand_id is None or args.customer_id is None:
        parser.error("brand_id and customer_id are required")
    return asyncio.run(score(args.brand_id, args.customer_id, args.since, args.limit))


if __name__ == "__main__":
    sys.exit(main())

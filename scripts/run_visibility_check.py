#!/usr/bin/env python3
"""
Visibility Check Runner

Runs one citation visibility pass for a domain:
1. Query dispatch (every configured answer engine)
2. Citation scoring per query and engine
3. Competitor comparison
4. Recommendations

Usage:
    # Set at least one engine key first:
    export PERPLEXITY_API_KEY=your_key
    export OPENAI_API_KEY=your_key

    # Run with generated queries:
    python scripts/run_visibility_check.py example.com

    # With options:
    python scripts/run_visibility_check.py example.com \
        --query "best crm for startups" \
        --query "crm with email automation" \
        --competitor hubspot.com \
        --save --json
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from src.collector.dispatcher import DispatchConfig
from src.database import get_db_context, init_db, load_competitor_history, load_runs, make_run_recorder
from src.integrations import build_engine_configs, create_adapters
from src.persistence import TrendStore
from src.services import VisibilityTracker
from src.utils.config import ConfigurationError, get_settings
from src.utils.domain_filter import normalize_domain

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    # HTTP client request lines drown out the run summary
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_visibility_check(
    domain: str,
    queries=None,
    competitors=None,
    deadline: float = None,
    save: bool = False,
):
    """Run one tracking pass and return the TrackingResult."""
    settings = get_settings()
    adapters = create_adapters(build_engine_configs(settings))

    store = TrendStore(window=settings.trend_window)
    recorder = make_run_recorder() if save else None

    tracker = VisibilityTracker(
        adapters,
        store=store,
        dispatch_config=DispatchConfig.from_settings(settings),
        run_recorder=recorder,
    )

    async with tracker:
        if save:
            host = normalize_domain(domain)
            init_db()
            with get_db_context() as db:
                history = load_runs(db, host)
                competitor_history = load_competitor_history(db, host)
            tracker.rebuild_history(host, history, competitor_history)
            logger.info(f"Loaded {len(history)} stored runs and {len(competitor_history)} competitor snapshots")

        return await tracker.track(
            domain,
            queries=queries,
            competitors=competitors,
            deadline=deadline,
        )


def print_summary(result):
    run = result.run
    print(f"\n{'=' * 60}")
    print(f"Domain: {run.domain}")
    if result.no_data:
        print("Visibility: NO DATA (no engine answered)")
    else:
        print(f"Visibility: {run.overall:.1f}/100")
    print(f"Batch: {result.batch_status.value} ({result.batch.ok_count}/{result.batch.call_count} calls ok)")
    print(f"Citations: {run.citation_count}")

    if run.top_queries:
        print("\nTop queries:")
        for text in run.top_queries:
            print(f"  - {text}")

    if result.competitors:
        print("\nCompetitors:")
        for snapshot in result.competitors:
            score = f"{snapshot.score:.1f}" if snapshot.score is not None else "n/a"
            print(f"  {snapshot.domain}: {score} (rank {snapshot.rank}, SoV {snapshot.share_of_voice:.0f}%)")

    if result.recommendations:
        print("\nRecommendations:")
        for rec in result.recommendations:
            engine = f" [{rec.target_engine}]" if rec.target_engine else ""
            print(f"  [{rec.priority.value}]{engine} {rec.title} (+{rec.expected_impact:.1f}, {rec.impact_label})")
    print(f"{'=' * 60}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Check how visible a domain is as a cited source in AI answer engines"
    )
    parser.add_argument(
        "domain",
        help="Domain to check (e.g., example.com)"
    )
    parser.add_argument(
        "--query",
        action="append",
        default=None,
        help="Query to test (repeatable; generated from the domain if omitted)"
    )
    parser.add_argument(
        "--competitor",
        action="append",
        default=None,
        help="Competitor domain (repeatable)"
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Batch deadline in seconds (default: BATCH_DEADLINE)"
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Store the run and load trend history from the database"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON"
    )

    args = parser.parse_args()

    load_dotenv()
    configure_logging(get_settings().LOG_LEVEL)

    try:
        result = asyncio.run(run_visibility_check(
            domain=args.domain,
            queries=args.query,
            competitors=args.competitor,
            deadline=args.deadline,
            save=args.save,
        ))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_summary(result)


if __name__ == "__main__":
    main()

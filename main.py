"""CLI entrypoint for catalog inspection and one-off theme runs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging

from core import ThemeSpec
from orchestrator import get_default_runner
from sources import SOURCE_MODE_ALL, SOURCE_MODE_NEWS_SOCIAL, get_source_catalog, summarize_source_cost
from utils.exceptions import SignalDigestError
from utils.logger import setup_logger


def main() -> None:
    parser = argparse.ArgumentParser(description="Publishing signal digest CLI")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    catalog = sub.add_parser("catalog")
    catalog.add_argument("--mode", default=SOURCE_MODE_ALL, choices=[SOURCE_MODE_ALL, SOURCE_MODE_NEWS_SOCIAL])

    run = sub.add_parser("run")
    run.add_argument("--query", required=True)
    run.add_argument("--name", default="")
    run.add_argument("--theme-id", default="default")
    run.add_argument("--period-days", type=int, default=2)
    run.add_argument("--mode", default=SOURCE_MODE_ALL, choices=[SOURCE_MODE_ALL, SOURCE_MODE_NEWS_SOCIAL])
    run.add_argument("--concurrency", type=int, default=None)
    run.add_argument("--timeout-ms", type=int, default=None)

    args = parser.parse_args()
    # root logger so module loggers (logging.getLogger(__name__)) reach the console
    setup_logger(name="", level=getattr(logging, str(args.log_level).upper(), logging.INFO))

    if args.command == "catalog":
        sources = get_source_catalog(args.mode)
        print(
            json.dumps(
                {
                    "mode": args.mode,
                    "cost": summarize_source_cost(sources),
                    "sources": [source.model_dump(mode="json") for source in sources],
                },
                ensure_ascii=False,
                indent=2,
            )
        )
        return

    if args.command == "run":
        theme = ThemeSpec(
            id=args.theme_id,
            name=args.name or args.query,
            query=args.query,
            period_days=args.period_days,
        )
        try:
            result = asyncio.run(
                get_default_runner().run_theme(
                    theme,
                    mode=args.mode,
                    concurrency=args.concurrency,
                    timeout_ms=args.timeout_ms,
                )
            )
        except SignalDigestError as exc:
            print(json.dumps({"ok": False, "error": exc.message, "details": exc.details}, ensure_ascii=False))
            raise SystemExit(1) from exc
        print(json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import httpx

from app.logging import configure_logging
from app.services import build_services
from app.settings import Settings, split_csv
from ingest.context import AggregateOptions, DisasterContext


def _parse_coords(value: str) -> tuple[float, float]:
    parts = split_csv(value)
    if len(parts) != 2:
        raise argparse.ArgumentTypeError("expected LAT,LON")
    return (float(parts[0]), float(parts[1]))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one aggregation and print JSON.")
    parser.add_argument("pipeline", choices=["official", "social"])
    parser.add_argument("--tags", default="", help="comma separated disaster tags")
    parser.add_argument("--location", default="")
    parser.add_argument("--description", default="")
    parser.add_argument("--disaster-id", default=None)
    parser.add_argument("--coords", type=_parse_coords, default=None)
    parser.add_argument("--sources", default=None, help="comma separated source ids")
    parser.add_argument("--max-results", type=int, default=None)
    parser.add_argument("--window-hours", type=int, default=None)
    parser.add_argument("--refresh", action="store_true")
    return parser


async def run(args: argparse.Namespace, settings: Settings) -> dict:
    context = DisasterContext(
        tags=tuple(split_csv(args.tags)),
        location_name=args.location,
        description=args.description,
        disaster_id=args.disaster_id,
        coordinates=args.coords,
    )
    options = AggregateOptions(
        sources=split_csv(args.sources) if args.sources is not None else None,
        max_results=args.max_results,
        time_window_hours=args.window_hours,
        refresh=args.refresh,
    )
    async with httpx.AsyncClient(follow_redirects=True) as client:
        services = build_services(settings, client)
        try:
            pipeline = services.official if args.pipeline == "official" else services.social
            result = await pipeline.aggregate(context, options)
        finally:
            services.close()
    return result.to_dict()


def main() -> None:
    args = build_parser().parse_args()
    settings = Settings()
    configure_logging(settings, stream=sys.stderr)
    print(json.dumps(asyncio.run(run(args, settings)), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()

"""Command-line interface for running waiver processing."""

from __future__ import annotations

import argparse
import json
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any

from waiverwire.config import load_settings
from waiverwire.config_loader import ProcessorProfile
from waiverwire.models import League, Team
from waiverwire.processor import TRIGGER_MANUAL, WaiverProcessor
from waiverwire.scheduler import Scheduler


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process fantasy football waiver claims")
    parser.add_argument("--db", default=None, help="SQLite database path (overrides WAIVERWIRE_DB_PATH)")
    parser.add_argument("--profile", type=Path, default=None, help="Load processor settings JSON")
    parser.add_argument("--save-profile", type=Path, default=None, help="Save the resolved settings JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    load = sub.add_parser("load-league", help="Load a league and its teams from JSON")
    load.add_argument("path", type=Path, help='JSON file with "league" and "teams" keys')

    process = sub.add_parser("process", help="Resolve pending claims for one league")
    process.add_argument("league_id")

    sub.add_parser("process-all", help="Resolve pending claims for every active league")

    rerank = sub.add_parser("rerank", help="Re-rank waiver priority by standings")
    rerank.add_argument("league_id", nargs="?", default=None, help="Only this league (default: all)")

    expire = sub.add_parser("expire", help="Expire pending claims past their window")
    expire.add_argument("--league", dest="league_id", default=None, help="Only this league")

    sub.add_parser("cleanup", help="Run daily maintenance once")
    sub.add_parser("next-times", help="Show the next processing time per league")
    sub.add_parser("stats", help="Show recent processing statistics")

    schedule = sub.add_parser("schedule", help="Run the scheduler until interrupted")
    schedule.add_argument("--poll", type=float, default=None, help="Seconds between schedule checks")

    serve = sub.add_parser("serve", help="Serve the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--with-scheduler", action="store_true", help="Also run the scheduler in-process")
    return parser.parse_args(argv)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _load_league(processor: WaiverProcessor, path: Path) -> None:
    data = json.loads(path.read_text(encoding="utf-8"))
    league = League.model_validate(data["league"])
    processor.store.save_league(league)
    teams = [Team.model_validate({"league_id": league.league_id, **raw}) for raw in data.get("teams", [])]
    for team in teams:
        processor.store.save_team(team)
    print(f"Loaded league {league.league_id} with {len(teams)} team(s)")


def _run_scheduler(processor: WaiverProcessor, poll_interval: float) -> None:
    scheduler = Scheduler(processor.clock, max_workers=processor.max_workers, poll_interval=poll_interval)
    processor.install(scheduler)
    for job in scheduler.jobs():
        print(f"{job.name}: next run {job.next_run.isoformat()}")
    scheduler.start()
    try:
        while scheduler.running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("Stopping scheduler")
    finally:
        scheduler.stop()


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    profile = ProcessorProfile.load(args.profile) if args.profile else ProcessorProfile()
    settings = profile.apply(load_settings())
    if args.db:
        settings = replace(settings, db_path=args.db)
    if args.save_profile:
        ProcessorProfile(
            db_path=str(settings.db_path),
            webhook_url=settings.webhook_url,
            max_workers=settings.max_workers,
            lease_ttl_seconds=settings.lease_ttl_seconds,
            retention_days=settings.retention_days,
            poll_interval=profile.poll_interval,
        ).save(args.save_profile)
        print(f"Saved processor profile to {args.save_profile}")

    processor = WaiverProcessor.from_settings(settings)

    if args.command == "load-league":
        _load_league(processor, args.path)
    elif args.command == "process":
        summary = processor.trigger_resolution(args.league_id, trigger=TRIGGER_MANUAL)
        if summary is None:
            print(f"League {args.league_id} is already being processed")
        else:
            _print_json(summary.model_dump(mode="json"))
    elif args.command == "process-all":
        _print_json(processor.process_all_leagues().to_dict())
    elif args.command == "rerank":
        if args.league_id:
            _print_json(processor.update_league_priorities(args.league_id))
        else:
            _print_json(processor.update_all_priorities())
    elif args.command == "expire":
        print(f"Expired {processor.expire_stale_claims(args.league_id)} claim(s)")
    elif args.command == "cleanup":
        _print_json(processor.cleanup())
    elif args.command == "next-times":
        for entry in processor.next_processing_times():
            print(f"{entry['league_id']} ({entry['mode']}): {entry['next_processing'].isoformat()}")
    elif args.command == "stats":
        _print_json(processor.processing_stats())
    elif args.command == "schedule":
        _run_scheduler(processor, args.poll or profile.poll_interval)
    elif args.command == "serve":
        import uvicorn

        from waiverwire.api import create_app

        scheduler = None
        if args.with_scheduler:
            scheduler = Scheduler(processor.clock, max_workers=processor.max_workers, poll_interval=profile.poll_interval)
            processor.install(scheduler)
            scheduler.start()
        try:
            uvicorn.run(create_app(processor=processor), host=args.host, port=args.port)
        finally:
            if scheduler is not None:
                scheduler.stop()


if __name__ == "__main__":
    main()

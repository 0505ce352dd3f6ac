"""Lightweight REST client for the waiverwire API."""

from __future__ import annotations

import argparse
import json

import httpx


def _show(resp: httpx.Response) -> None:
    if resp.status_code >= 400:
        detail = resp.json().get("detail", resp.text)
        raise SystemExit(f"{resp.status_code}: {json.dumps(detail)}")
    print(json.dumps(resp.json(), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the waiverwire REST API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Submit a waiver claim")
    submit.add_argument("team_id")
    submit.add_argument("kind", choices=["ADD", "DROP", "ADD_DROP"])
    submit.add_argument("--add", dest="add_player_id", default=None)
    submit.add_argument("--drop", dest="drop_player_id", default=None)
    submit.add_argument("--bid", type=int, default=0)
    submit.add_argument("--notes", default="")

    cancel = sub.add_parser("cancel", help="Cancel a pending claim")
    cancel.add_argument("claim_id")
    cancel.add_argument("team_id", help="Team requesting the cancellation")

    claims = sub.add_parser("claims", help="List a team's claims")
    claims.add_argument("team_id")
    claims.add_argument("--status", default=None)

    process = sub.add_parser("process", help="Trigger resolution for a league")
    process.add_argument("league_id")

    report = sub.add_parser("report", help="Show a league's waiver report")
    report.add_argument("league_id")
    report.add_argument("--week", type=int, default=None)

    available = sub.add_parser("available", help="List free agents with pending claims")
    available.add_argument("league_id")
    available.add_argument("player_ids", nargs="*")

    budget = sub.add_parser("budget", help="Show a team's FAAB budget")
    budget.add_argument("team_id")

    sub.add_parser("stats", help="Show processor statistics")
    args = parser.parse_args()

    with httpx.Client(base_url=args.base_url) as client:
        if args.command == "submit":
            payload = {
                "team_id": args.team_id,
                "kind": args.kind,
                "add_player_id": args.add_player_id,
                "drop_player_id": args.drop_player_id,
                "bid_amount": args.bid,
                "notes": args.notes,
            }
            _show(client.post("/claims", json=payload))
        elif args.command == "cancel":
            _show(client.post(f"/claims/{args.claim_id}/cancel", json={"team_id": args.team_id}))
        elif args.command == "claims":
            params = {"status": args.status} if args.status else None
            _show(client.get(f"/teams/{args.team_id}/claims", params=params))
        elif args.command == "process":
            _show(client.post(f"/leagues/{args.league_id}/process"))
        elif args.command == "report":
            params = {"week": args.week} if args.week else None
            _show(client.get(f"/leagues/{args.league_id}/report", params=params))
        elif args.command == "available":
            params = {"player_id": args.player_ids} if args.player_ids else None
            _show(client.get(f"/leagues/{args.league_id}/available", params=params))
        elif args.command == "budget":
            _show(client.get(f"/teams/{args.team_id}/budget"))
        elif args.command == "stats":
            _show(client.get("/processor/stats"))


if __name__ == "__main__":
    main()

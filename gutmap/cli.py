"""CLI commands for Gutmap."""

import argparse
import json
import sys
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from gutmap.database import SessionLocal, init_db
from gutmap.services.bloating import resolve_now
from gutmap.services.insights_service import InsightsService
from gutmap.services.milestone_service import INSIGHT_TABS, MilestoneService, build_usage_snapshot
from gutmap.services.schemas import MealRecord, MilestoneState
from gutmap.services.state_store import MilestoneStateStore


def load_records(path: str) -> List[MealRecord]:
    """Read records from a JSON file holding a list or an object with a "records" key."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: Could not read records from '{path}': {e}")
        sys.exit(1)

    if isinstance(data, dict):
        data = data.get("records", [])
    try:
        return [MealRecord.model_validate(item) for item in data]
    except (ValidationError, TypeError) as e:
        print(f"Error: Invalid meal record in '{path}': {e}")
        sys.exit(1)


def parse_now(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        print(f"Error: --now must be an ISO 8601 timestamp, got '{value}'.")
        sys.exit(1)


def analyze(path: str, now: Optional[str] = None) -> None:
    """Print comprehensive insights for a record file."""
    records = load_records(path)
    insights = InsightsService().analyze(records, now=parse_now(now))
    print(insights.model_dump_json(indent=2))


def progress(
    path: str,
    now: Optional[str] = None,
    user_id: str = "local",
    persist: bool = False,
) -> None:
    """
    Evaluate milestones for a record file and print the result.

    Without --persist the evaluation starts from a fresh state; with it the
    user's stored state is loaded, advanced and written back.
    """
    records = load_records(path)
    when = resolve_now(parse_now(now))
    service = MilestoneService()

    db: Optional[Session] = None
    try:
        if persist:
            init_db()
            db = SessionLocal()
            state = MilestoneStateStore.load(db, user_id, now=when)
        else:
            state = MilestoneState.initial(user_id, when)

        snapshot = build_usage_snapshot(records, now=when)
        new_state, events = service.evaluate(state, snapshot, now=when)
        if db is not None and new_state != state:
            MilestoneStateStore.save(db, new_state)
    finally:
        if db is not None:
            db.close()

    next_milestone = service.next_milestone(new_state)
    output = {
        "current_tier": new_state.current_tier,
        "events": [e.model_dump(mode="json") for e in events],
        "tier_progress": [
            service.tier_progress(new_state, tier).model_dump() for tier in range(1, 6)
        ],
        "tabs": [
            service.tab_unlock_progress(new_state, tab.id, snapshot).model_dump()
            for tab in INSIGHT_TABS
        ],
        "next_milestone": next_milestone.model_dump() if next_milestone else None,
    }
    print(json.dumps(output, indent=2, ensure_ascii=False))


def main():
    parser = argparse.ArgumentParser(description="Gutmap CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # analyze command
    analyze_parser = subparsers.add_parser(
        "analyze", help="Print trigger insights for a records file"
    )
    analyze_parser.add_argument("records", help="Path to a JSON file of meal records")
    analyze_parser.add_argument("--now", help="Reference time (ISO 8601, defaults to now)")

    # progress command
    progress_parser = subparsers.add_parser(
        "progress", help="Evaluate milestone progress for a records file"
    )
    progress_parser.add_argument("records", help="Path to a JSON file of meal records")
    progress_parser.add_argument("--now", help="Reference time (ISO 8601, defaults to now)")
    progress_parser.add_argument("--user-id", default="local", help="User id for stored state")
    progress_parser.add_argument(
        "--persist", action="store_true", help="Load and save milestone state in the database"
    )

    args = parser.parse_args()

    if args.command == "analyze":
        analyze(args.records, args.now)
    elif args.command == "progress":
        progress(args.records, args.now, user_id=args.user_id, persist=args.persist)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

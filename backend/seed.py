"""Issue an API token for a user and optionally seed sample logs.

Usage:
    python seed.py <user_id> [--sample]
"""
import sys
from datetime import timedelta

from sqlmodel import Session, select

import gateway
from auth import issue_token
from config import get_settings
from db import engine
from models import DailyLog
from pipeline import today_in

SAMPLE_LOGS = [
    {
        "transcript": "Slept about seven and a half hours, did yoga, mostly focused on the release.",
        "extracted": {
            "schema_version": 1,
            "sleep_hours": 7.5,
            "mood": "calm",
            "energy": 7,
            "focus": 8,
            "highlights": ["Shipped the release"],
            "habits": {"yoga": True, "workout": False, "reading_minutes": 20, "no_smoking": True},
            "work": {"top_task_done": "Release", "time_blocks": [{"label": "Deep work", "minutes": 120}]},
            "notes": "Good, steady day.",
        },
    },
    {
        "transcript": "Rough night, maybe five hours. Walked a lot though.",
        "extracted": {
            "schema_version": 1,
            "sleep_hours": 5,
            "mood": "tired",
            "energy": 4,
            "challenges": ["Poor sleep"],
            "health": {"steps": 11000, "water_glasses": 6, "calories": 2100},
        },
    },
    {
        "transcript": "",
        "extracted": {"schema_version": 1},
    },
]


def seed_database(user_id: str):
    """Seed the last few days for user_id with sample data."""
    today = today_in(get_settings().app_timezone)
    with Session(engine) as session:
        # Check if data already exists
        existing = session.exec(select(DailyLog).where(DailyLog.user_id == user_id)).first()
        if existing:
            print("User already has logs, skipping seed.")
            return

        for offset, sample in enumerate(SAMPLE_LOGS):
            gateway.upsert(
                session,
                user_id,
                today - timedelta(days=offset + 1),
                sample["transcript"],
                sample["extracted"],
            )
        print(f"Seeded {len(SAMPLE_LOGS)} sample logs for {user_id}.")


if __name__ == "__main__":
    from db import create_db_and_tables

    if len(sys.argv) < 2:
        print("Usage: python seed.py <user_id> [--sample]")
        sys.exit(1)

    user = sys.argv[1]
    create_db_and_tables()
    with Session(engine) as session:
        token = issue_token(session, user)
    print(f"API token for {user} (shown once): {token}")

    if "--sample" in sys.argv[2:]:
        seed_database(user)

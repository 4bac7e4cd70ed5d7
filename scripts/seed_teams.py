"""Seed the global team roster.

Usage:
    python scripts/seed_teams.py seed [teams.csv]   # Add teams (skips existing names)
    python scripts/seed_teams.py status             # Print the roster

The CSV needs ``team_name,star_rating,conference`` columns. Without a
file a small sample roster is loaded. Uses DATABASE_URL, or the local
dynasty.db.
"""

from __future__ import annotations

import asyncio
import csv
import os
import sys

from dynasty.db.engine import create_engine, create_tables, get_session
from dynasty.db.repository import Repository

DB_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///dynasty.db")

SAMPLE_TEAMS = [
    ("Alabama", 5.0, "SEC"),
    ("Georgia", 5.0, "SEC"),
    ("Ohio State", 5.0, "Big Ten"),
    ("Texas", 4.5, "SEC"),
    ("Oregon", 4.5, "Big Ten"),
    ("Clemson", 4.0, "ACC"),
    ("Utah", 3.5, "Big 12"),
    ("Boise State", 3.0, "Mountain West"),
    ("Tulane", 2.5, "American"),
    ("Liberty", 2.0, "Conference USA"),
]


def load_csv(path: str) -> list[tuple[str, float, str]]:
    with open(path, newline="", encoding="utf-8") as fh:
        return [
            (row["team_name"].strip(), float(row["star_rating"] or 0), row["conference"].strip())
            for row in csv.DictReader(fh)
            if row.get("team_name", "").strip()
        ]


async def seed(teams: list[tuple[str, float, str]]) -> None:
    engine = create_engine(DB_URL)
    await create_tables(engine)

    added = 0
    async with get_session(engine) as session:
        repo = Repository(session)
        for name, rating, conference in teams:
            if await repo.find_team_by_name(name) is not None:
                continue
            await repo.create_team(name, star_rating=rating, conference=conference)
            added += 1

    print(f"Seeded {added} teams ({len(teams) - added} already present)")
    await engine.dispose()


async def status() -> None:
    engine = create_engine(DB_URL)
    await create_tables(engine)
    async with get_session(engine) as session:
        teams = await Repository(session).list_all_teams()
        for team in teams:
            print(f"  {team.team_name:<30} {team.star_rating:>4}  {team.conference}")
        print(f"{len(teams)} teams")
    await engine.dispose()


def main() -> None:
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1]
    if cmd == "seed":
        teams = load_csv(sys.argv[2]) if len(sys.argv) > 2 else SAMPLE_TEAMS
        asyncio.run(seed(teams))
    elif cmd == "status":
        asyncio.run(status())
    else:
        print(f"Unknown command: {cmd}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Database Seeder for Treasure Hunt

Populates the database with players and games for local testing.

Usage:
    # From project root with venv activated:
    python scripts/seed_database.py

    # With options:
    python scripts/seed_database.py --users 50 --games 6 --clear

Features:
    - Creates players spread over a few cities, most with push tokens
    - Creates location games near each city centre
    - Creates battle royale games with a populated leaderboard
"""
import argparse
import os
import random
import sys
from uuid import uuid4

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from treasure_hunt.db.database import SessionLocal, init_db  # noqa: E402
from treasure_hunt.db import models  # noqa: E402
from treasure_hunt.services.game_service import game_service  # noqa: E402

# Configuration
DEFAULT_NUM_USERS = 40
DEFAULT_NUM_GAMES = 6

FIRST_NAMES = [
    "James", "Mary", "John", "Patricia", "Robert", "Jennifer", "Emma", "Olivia",
    "Liam", "Noah", "Mohamed", "Chen", "Raj", "Priya", "Yuki", "Fatima"
]

CITIES = [
    {"name": "New York", "lat": 40.7128, "lng": -74.0060},
    {"name": "Austin", "lat": 30.2672, "lng": -97.7431},
    {"name": "Chicago", "lat": 41.8781, "lng": -87.6298},
]

VIRTUAL_TYPES = ["tap_count", "reaction", "memory"]


def jitter(value: float, meters: float = 300) -> float:
    """Move a coordinate by up to `meters` (roughly, in degrees)"""
    return value + random.uniform(-meters, meters) / 111_000


def seed_database(
    num_users: int = DEFAULT_NUM_USERS,
    num_games: int = DEFAULT_NUM_GAMES,
    clear_existing: bool = False
):
    """Main seeding function"""
    print("=" * 60)
    print("Treasure Hunt Database Seeder")
    print("=" * 60)
    print(f"Users: {num_users}")
    print(f"Games: {num_games}")
    print()

    init_db()
    db = SessionLocal()

    try:
        if clear_existing:
            print("Clearing existing data...")
            # Children first because of foreign keys
            for model in (
                models.DailyWin, models.GameAttempt, models.LeaderboardEntry,
                models.GameWinner, models.Game, models.User
            ):
                db.query(model).delete()
            db.commit()
            print("  Done clearing tables")

        # =====================================================================
        # 1. Seed Users
        # =====================================================================
        print("\n1. Seeding users...")
        users = []
        for i in range(num_users):
            city = random.choice(CITIES)
            user = models.User(
                id=f"seed-{uuid4().hex[:12]}",
                username=f"{random.choice(FIRST_NAMES).lower()}{i}",
                city=city["name"],
                push_token=f"ExponentPushToken[{uuid4().hex[:22]}]" if random.random() < 0.8 else None,
                balance=0.0,
                total_earnings=0.0,
                total_wins=0
            )
            db.add(user)
            users.append(user)
        db.commit()
        print(f"  Created {num_users} users")

        # =====================================================================
        # 2. Seed Games
        # =====================================================================
        print("\n2. Seeding games...")
        location_count = 0
        virtual_count = 0
        for i in range(num_games):
            city = CITIES[i % len(CITIES)]
            if i % 2 == 0:
                game = game_service.create_game(db, {
                    "kind": "location",
                    "name": f"{city['name']} Hunt #{i + 1}",
                    "city": city["name"],
                    "prize_amount": random.choice([25, 50, 100, 250]),
                    "winner_slots": random.randint(1, 5),
                    "latitude": jitter(city["lat"]),
                    "longitude": jitter(city["lng"]),
                    "accuracy_radius": random.choice([5, 10, 15])
                })
                location_count += 1
            else:
                game = game_service.create_game(db, {
                    "kind": "virtual",
                    "name": f"{city['name']} Battle Royale #{i + 1}",
                    "city": city["name"],
                    "prize_amount": random.choice([100, 300, 500]),
                    "winner_slots": 3,
                    "virtual_type": random.choice(VIRTUAL_TYPES)
                })
                virtual_count += 1

            game_service.change_status(db, game.id, "live")

            if game.kind == "virtual":
                players = random.sample(users, k=min(len(users), 10))
                for user in players:
                    db.add(models.LeaderboardEntry(
                        game_id=game.id,
                        user_id=user.id,
                        username=user.username,
                        score=float(random.randint(5, 200)),
                        device_id=f"device-{user.id}"
                    ))
                db.commit()

        print(f"  Created {location_count} location games")
        print(f"  Created {virtual_count} battle royale games")

        print("\n" + "=" * 60)
        print("Database seeding complete!")
        print("=" * 60)

    except Exception as e:
        db.rollback()
        print(f"\nError during seeding: {e}")
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Seed Treasure Hunt database with players and games"
    )
    parser.add_argument(
        "--users", "-u",
        type=int,
        default=DEFAULT_NUM_USERS,
        help=f"Number of users (default: {DEFAULT_NUM_USERS})"
    )
    parser.add_argument(
        "--games", "-g",
        type=int,
        default=DEFAULT_NUM_GAMES,
        help=f"Number of games (default: {DEFAULT_NUM_GAMES})"
    )
    parser.add_argument(
        "--clear", "-c",
        action="store_true",
        help="Clear existing data before seeding"
    )

    args = parser.parse_args()

    seed_database(
        num_users=args.users,
        num_games=args.games,
        clear_existing=args.clear
    )


if __name__ == "__main__":
    main()

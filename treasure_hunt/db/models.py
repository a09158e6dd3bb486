"""
SQLAlchemy ORM Models for the Treasure Hunt service
"""
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime,
    ForeignKey, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from treasure_hunt.db.database import Base


GAME_KINDS = ("location", "virtual")
GAME_STATUSES = ("pending", "scheduled", "live", "completed", "inactive")
WIN_CATEGORIES = ("physical", "battle_royale")


class User(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    username = Column(String(100))
    city = Column(String(100))
    push_token = Column(String(255))

    # Balance record
    balance = Column(Float, nullable=False, default=0.0)
    total_earnings = Column(Float, nullable=False, default=0.0)
    total_wins = Column(Integer, nullable=False, default=0)

    # Daily cap, one date per category (YYYY-MM-DD)
    last_physical_win_date = Column(String(10))
    last_battle_royale_win_date = Column(String(10))

    last_win_game_id = Column(String(36))
    last_win_game_name = Column(String(255))
    last_win_amount = Column(Float)
    last_win_at = Column(DateTime(timezone=True))
    last_win_device_id = Column(String(255))
    pending_winner_card = Column(JSON)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    city = Column(String(100), index=True)
    kind = Column(String(20), nullable=False)  # location, virtual
    status = Column(String(20), nullable=False, default="pending", index=True)
    prize_amount = Column(Float, nullable=False, default=0.0)
    winner_slots = Column(Integer, nullable=False, default=3)

    # Location games
    accuracy_radius = Column(Float)
    target_latitude = Column(Float)
    target_longitude = Column(Float)

    # Virtual (battle royale) games
    virtual_type = Column(String(50))
    score_order = Column(String(4))  # asc = lower is better
    prize_distribution = Column(JSON)

    scheduled_time = Column(DateTime(timezone=True))
    launched_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True))

    # Optimistic lock: every UPDATE is conditional on the version read
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    winners = relationship(
        "GameWinner", back_populates="game", order_by="GameWinner.position"
    )
    attempts = relationship(
        "GameAttempt", back_populates="game", order_by="GameAttempt.id"
    )
    leaderboard = relationship(
        "LeaderboardEntry", back_populates="game", order_by="LeaderboardEntry.id"
    )


class GameWinner(Base):
    __tablename__ = "game_winners"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    username = Column(String(100))
    position = Column(Integer, nullable=False)
    completed_at = Column(DateTime(timezone=True))
    distance = Column(Float)
    score = Column(Float)
    leaderboard_position = Column(Integer)
    prize_amount = Column(Float, nullable=False, default=0.0)
    prize_percent = Column(Float)
    claim_deadline = Column(DateTime(timezone=True))
    claimed = Column(Boolean, default=False)

    __table_args__ = (
        UniqueConstraint('game_id', 'user_id', name='unique_game_winner_user'),
        UniqueConstraint('game_id', 'position', name='unique_game_winner_position'),
    )

    game = relationship("Game", back_populates="winners")
    user = relationship("User")


class GameAttempt(Base):
    __tablename__ = "game_attempts"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False)
    attempted_at = Column(DateTime(timezone=True))
    distance = Column(Float)
    latitude = Column(Float)
    longitude = Column(Float)
    outcome = Column(String(30))

    game = relationship("Game", back_populates="attempts")


class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entries"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False)
    user_id = Column(String(128), nullable=False)
    username = Column(String(100))
    score = Column(Float, nullable=False)
    device_id = Column(String(255))
    submitted_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('game_id', 'user_id', name='unique_leaderboard_user'),
    )

    game = relationship("Game", back_populates="leaderboard")


class DailyWin(Base):
    """Per (date, device, category) marker used for device-level abuse checks"""
    __tablename__ = "daily_wins"

    date = Column(String(10), primary_key=True)
    device_id = Column(String(255), primary_key=True)
    category = Column(String(20), primary_key=True)
    user_id = Column(String(128), nullable=False)
    game_id = Column(String(36))
    game_name = Column(String(255))
    prize_amount = Column(Float)
    won_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('unique_daily_win_user', 'user_id', 'date', 'category', unique=True),
    )

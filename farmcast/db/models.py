"""SQLAlchemy ORM models for cycles, wagers, and resolution records."""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class WeatherCycle(Base):
    """One betting/resolution round. Owned by the cycle lifecycle controller."""

    __tablename__ = "weather_cycles"

    cycle_id = Column(BigInteger, primary_key=True, autoincrement=False)
    start_block = Column(BigInteger, nullable=False, default=0)
    current_block = Column(BigInteger, nullable=False, default=0)
    phase = Column(String(20), nullable=False, default="open", index=True)

    # Location reveal
    location_id = Column(String(50), nullable=True)
    location_name = Column(String(100), nullable=True)  # "Tokyo, Japan"
    location_coords = Column(JSON, nullable=True)  # {"lat": .., "lon": ..}
    location_selection_hash = Column(String(64), nullable=True)
    location_revealed_at = Column(DateTime, nullable=True)

    # Weather snapshot
    weather_data = Column(JSON, nullable=True)
    weather_score = Column(Float, nullable=True)  # farming suitability 0-100
    weather_source = Column(String(50), nullable=True)
    weather_fetched_at = Column(DateTime, nullable=True)
    weather_fetch_error = Column(Text, nullable=True)

    # Resolution (written once)
    weather_outcome = Column(String(10), nullable=True)  # "GOOD" or "BAD"
    final_score = Column(Float, nullable=True)
    confidence = Column(Float, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    settled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<WeatherCycle(cycle_id={self.cycle_id}, phase={self.phase})>"


class WeatherWager(Base):
    """A user's stake on GOOD or BAD weather for one cycle."""

    __tablename__ = "weather_wagers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    cycle_id = Column(BigInteger, nullable=False, index=True)
    direction = Column(String(10), nullable=False)  # "GOOD" or "BAD"
    amount = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active, settled, cancelled
    payout = Column(Float, nullable=True)
    is_winner = Column(Boolean, nullable=True)
    placed_at = Column(DateTime, nullable=False, default=utcnow)
    settled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # At most one active wager per (user, cycle).
        Index(
            "uq_weather_wagers_active_user_cycle",
            "user_id",
            "cycle_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<WeatherWager(id={self.id}, user={self.user_id}, "
            f"direction={self.direction}, amount={self.amount}, status={self.status})>"
        )


class CycleResolution(Base):
    """Immutable result of fusing the three outcome signals for a cycle."""

    __tablename__ = "cycle_resolutions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cycle_id = Column(BigInteger, nullable=False, unique=True, index=True)
    outcome = Column(String(10), nullable=False)
    final_score = Column(Float, nullable=False)
    confidence = Column(Float, nullable=False)
    has_real_weather = Column(Boolean, nullable=False)
    payload = Column(JSON, nullable=False)  # components, formula, metadata
    resolved_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<CycleResolution(cycle_id={self.cycle_id}, outcome={self.outcome}, "
            f"score={self.final_score})>"
        )

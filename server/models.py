"""SQLAlchemy models for the revealed trail, run history, unlocks, caches and config."""

import datetime
from sqlalchemy import Column, Integer, BigInteger, Float, String, DateTime, JSON, Text

from database import Base


class RevealedPoint(Base):
    """One point of the cumulative revealed trail. `id` preserves append order."""

    __tablename__ = "revealed_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    t = Column(BigInteger, nullable=True)


class Run(Base):
    __tablename__ = "runs"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String, unique=True, nullable=False, index=True)
    started_at = Column(BigInteger, nullable=False)
    ended_at = Column(BigInteger, nullable=False)
    distance_meters = Column(Float, nullable=False)
    points = Column(JSON, nullable=False)


class UnlockedDistrict(Base):
    __tablename__ = "unlocked_districts"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    district_id = Column(String, unique=True, nullable=False, index=True)
    unlocked_at = Column(DateTime, default=datetime.datetime.utcnow)


class AppState(Base):
    """Auxiliary persisted fields (streak counters, drop state) the engine does not interpret."""

    __tablename__ = "app_state"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=True)


class DistrictCache(Base):
    """Normalized district sets keyed by rounded fetch location."""

    __tablename__ = "district_cache"

    cache_key = Column(String, primary_key=True)
    districts = Column(JSON, nullable=False)
    fetched_at = Column(DateTime, default=datetime.datetime.utcnow)


class Config(Base):
    __tablename__ = "config"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)

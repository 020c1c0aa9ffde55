"""Database setup and session management using SQLAlchemy + SQLite."""

import logging
import os

logger = logging.getLogger(__name__)

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///fogwalk.db")

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None, session_factory=None):
    """Create all tables and seed the default thresholds."""
    from models import RevealedPoint, Run, UnlockedDistrict, AppState, DistrictCache, Config  # noqa: F401

    bind = bind or engine
    logger.info("Initializing database at %s", bind.url)
    Base.metadata.create_all(bind=bind)
    _seed_config(session_factory or sessionmaker(bind=bind))


# Default engine thresholds (must match tracker.py module-level constants)
DEFAULT_THRESHOLDS = {
    "max_speed_mps": "50.0",
    "min_step_m": "2.0",
    "max_accuracy_m": "0",
    "refetch_distance_m": "5000.0",
    "cell_precision": "4",
    "grid_cell_deg": "0.005",
    "fog_gap_m": "50.0",
}


def _seed_config(session_factory):
    """Insert default thresholds if not present."""
    from models import Config

    db = session_factory()
    try:
        for key, value in DEFAULT_THRESHOLDS.items():
            if not db.query(Config).filter(Config.key == key).first():
                db.add(Config(key=key, value=value))
        db.commit()
    finally:
        db.close()

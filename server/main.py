"""Entry point: starts the NiceGUI server with the REST API mounted."""

import logging
import logging.handlers
import os

from nicegui import app, ui

from api import router
from database import SessionLocal, init_db
from notifications import Notifier
from session import GameSession
from storage import TrailStore
from tracker import get_thresholds

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
LOG_DIR = os.environ.get("LOG_DIR", "/data" if os.path.isdir("/data") else ".")
LOG_FILE = os.path.join(LOG_DIR, "fogwalk.log")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(
            LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3,
        ),
    ],
)
logger = logging.getLogger("fogwalk")

# Quiet noisy libraries
logging.getLogger("watchfiles").setLevel(logging.WARNING)
logging.getLogger("multipart").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)


def _log_event(event: str, payload: dict):
    logger.info("event=%s %s", event, payload)


def start_session():
    """Create tables, read thresholds and attach the game session to the app."""
    init_db()
    db = SessionLocal()
    try:
        thresholds = get_thresholds(db)
    finally:
        db.close()

    notifier = Notifier()
    notifier.subscribe(_log_event)
    app.state.game = GameSession(TrailStore(SessionLocal), notifier, thresholds)
    logger.info("Session ready: %d revealed points, %d runs", len(app.state.game.trail), len(app.state.game.runs))


# Mount FastAPI REST endpoints for the client app
app.include_router(router)

app.on_startup(start_session)

ui.run(
    title="FogWalk",
    port=int(os.environ.get("PORT", "8080")),
    storage_secret=os.environ.get("STORAGE_SECRET", "change-me-in-production"),
    show=False,
)

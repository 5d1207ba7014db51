import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_configure(config):
    """Runs before test modules are imported, so settings load from these values."""
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    os.environ["REDIS_URL"] = ""
    os.environ["CHANGE_FEED_ENABLED"] = "false"
    os.environ["FORECAST_REFRESH_INTERVAL_MINUTES"] = "0"

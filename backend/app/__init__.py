"""Host-side configuration, logging and metrics for the realtime client."""

from pathlib import Path
import sys

SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if SRC_PATH.exists() and str(SRC_PATH) not in sys.path:  # pragma: no branch - source checkout only
    sys.path.append(str(SRC_PATH))

from app.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]

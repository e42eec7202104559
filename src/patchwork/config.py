"""Configuration handling for Patchwork proxy."""

import yaml
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv()

sanitizer_logger = logging.getLogger("sanitizer")
sanitizer_logger.setLevel(logging.INFO)

log_dir = Path(__file__).parent.parent.parent / "logs"
os.makedirs(log_dir, exist_ok=True)

sanitizer_log_file = log_dir / "sanitizer.log"

# config is reloaded in tests; only attach the file handler once
if not sanitizer_logger.handlers:
    file_handler = logging.FileHandler(str(sanitizer_log_file), mode="a")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )
    sanitizer_logger.addHandler(file_handler)
sanitizer_logger.propagate = True

DEFAULT_CONFIG: Dict[str, Any] = {
    "backend": {"name": "default", "url": "https://api.openai.com/v1"},
    "settings": {"timeout": 60, "fetch_models": False, "host": "0.0.0.0", "port": 8006},
    "sanitizer": {"max_payload_chars": 480_000, "min_retained_messages": 2},
    "rate_limit": {"seconds": None, "wait": False},
    "manual_approve": False,
    "models": [],
}


def config_path() -> Path:
    """Location of the YAML config, overridable with PATCHWORK_CONFIG."""
    override = os.environ.get("PATCHWORK_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).parent.parent.parent / "config.yaml"


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from the config.yaml file.

    Sections missing from the file are filled in from DEFAULT_CONFIG, so callers
    can index any top-level key. An unreadable file falls back to the defaults.
    """
    path = path or config_path()
    try:
        loaded = yaml.safe_load(path.read_text()) or {}
        logger.info(f"Successfully loaded configuration from {path}")
    except Exception as e:
        logger.error(f"Error loading {path}: {str(e)}")
        loaded = {}

    config = {}
    for key, default in DEFAULT_CONFIG.items():
        value = loaded.get(key, default)
        if isinstance(default, dict):
            merged = dict(default)
            merged.update(value or {})
            value = merged
        config[key] = value
    return config


config = load_config()

BACKEND = config["backend"]
OPENAI_API_BASE = BACKEND.get("url", "")

if not OPENAI_API_BASE:
    logger.warning("Backend URL not set in config.yaml, using default value")
    OPENAI_API_BASE = "https://api.openai.com/v1"

TIMEOUT = config["settings"].get("timeout", 60)
FETCH_MODELS = bool(config["settings"].get("fetch_models", False))
HOST = config["settings"].get("host", "0.0.0.0")
PORT = int(config["settings"].get("port", 8006))

MAX_PAYLOAD_CHARS = int(config["sanitizer"]["max_payload_chars"])
MIN_RETAINED_MESSAGES = int(config["sanitizer"]["min_retained_messages"])

RATE_LIMIT_SECONDS = config["rate_limit"].get("seconds")
RATE_LIMIT_WAIT = bool(config["rate_limit"].get("wait", False))

MANUAL_APPROVE = bool(config.get("manual_approve", False))

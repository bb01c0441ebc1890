from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "public" / "data"
CHARTS_FILENAME = "steam-charts.json"
CHARTS_MIN_FILENAME = "steam-charts.min.json"
SUMMARY_FILENAME = "steam-charts-summary.json"
CHECKPOINT_FILENAME = "steam-charts.partial.json"


# ---------------------------
# Upstream endpoints
# ---------------------------

STEAM_API_BASE = "https://api.steampowered.com"
STEAMSPY_API_BASE = "https://steamspy.com/api.php"

MOST_PLAYED_URL = f"{STEAM_API_BASE}/ISteamChartsService/GetMostPlayedGames/v1/"
CURRENT_PLAYERS_URL = f"{STEAM_API_BASE}/ISteamUserStats/GetNumberOfCurrentPlayers/v1/"


# ---------------------------
# Source priorities (lower wins on merge conflicts)
# ---------------------------

PRIORITY_STEAM_CHARTS = 1
PRIORITY_STEAMSPY_TOP = 2
PRIORITY_STEAMSPY_CATALOG = 3

# Candidates whose priority number is <= this are never dropped by the sampler
PROTECTED_PRIORITY_MAX = 2

DEFAULT_TAGS: List[str] = [
    "Multiplayer",
    "Free to Play",
    "Early Access",
    "Action",
    "Indie",
    "VR",
    "Co-op",
    "Survival",
    "RPG",
    "Strategy",
]

# SteamSpy "all" pages are ~1000 rows; a run of empty pages means we walked off the end
MAX_CONSECUTIVE_EMPTY_PAGES = 3


# ---------------------------
# Run defaults
# ---------------------------

DEFAULT_CONCURRENCY = 10
DEFAULT_WINDOW_DELAY = 0.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_MIN_REQUIRED = 10_000
DEFAULT_TARGET_SIZE = 0          # 0 disables sampling
DEFAULT_CHECKPOINT_INTERVAL = 1000
DEFAULT_MAX_PAGES = 100
DEFAULT_TARGET_GAMES = 20_000     # tag pass only runs below this many active games
SUMMARY_TOP_K = 100
CHECKPOINT_TOP_K = 50

DATASET_SOURCE = "steam-multi-source"
DATASET_VERSION = "3.1.0"


# ---------------------------
# HTTP hardening
# ---------------------------

HTTP_CONNECT_TIMEOUT = 5.0
HTTP_READ_TIMEOUT = 20.0
HTTP_MAX_CONNECTIONS = 20

HTTP_USER_AGENT = (
    "steamcharts-builder/3.1 (+https://example.com; contact=charts@placeholder.com)"
)


# ---------------------------
# Logging / observability
# ---------------------------

LOG_DIR = PROJECT_ROOT / "logs"
LOG_FILE = LOG_DIR / "steamcharts.log"
DEFAULT_LOG_LEVEL = os.getenv("STEAMCHARTS_LOG_LEVEL", "INFO")


# ---------------------------
# Environment-driven settings
# ---------------------------

class Settings(BaseModel):
    """
    Knobs for a single pipeline run.

    Every field has a default and can be overridden through a
    ``STEAMCHARTS_*`` environment variable (see :func:`load_settings`)
    or, for the common ones, through the CLI.
    """

    concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1)
    window_delay: float = Field(DEFAULT_WINDOW_DELAY, ge=0)
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0)
    retry_delay: float = Field(DEFAULT_RETRY_DELAY, ge=0)
    min_required: int = Field(DEFAULT_MIN_REQUIRED, ge=0)
    target_size: int = Field(DEFAULT_TARGET_SIZE, ge=0)
    checkpoint_interval: int = Field(DEFAULT_CHECKPOINT_INTERVAL, ge=0)
    max_pages: int = Field(DEFAULT_MAX_PAGES, ge=0)
    target_games: int = Field(DEFAULT_TARGET_GAMES, ge=0)
    output_dir: Path = DEFAULT_OUTPUT_DIR
    seed: Optional[int] = None
    tags: List[str] = Field(default_factory=lambda: list(DEFAULT_TAGS))

    @property
    def checkpoint_path(self) -> Path:
        return self.output_dir / CHECKPOINT_FILENAME


# env var -> Settings field
ENV_FIELDS: Dict[str, str] = {
    "STEAMCHARTS_CONCURRENCY": "concurrency",
    "STEAMCHARTS_WINDOW_DELAY": "window_delay",
    "STEAMCHARTS_MAX_RETRIES": "max_retries",
    "STEAMCHARTS_RETRY_DELAY": "retry_delay",
    "STEAMCHARTS_MIN_REQUIRED": "min_required",
    "STEAMCHARTS_TARGET_SIZE": "target_size",
    "STEAMCHARTS_CHECKPOINT_INTERVAL": "checkpoint_interval",
    "STEAMCHARTS_MAX_PAGES": "max_pages",
    "STEAMCHARTS_TARGET_GAMES": "target_games",
    "STEAMCHARTS_OUTPUT_DIR": "output_dir",
    "STEAMCHARTS_SEED": "seed",
}


def load_settings(env: Optional[Dict[str, str]] = None, **overrides) -> Settings:
    """
    Build :class:`Settings` from the environment, then apply explicit overrides.

    Empty env values are ignored. Overrides that are ``None`` are ignored too,
    so CLI flags can be passed straight through.
    """
    env = os.environ if env is None else env
    values: Dict[str, object] = {}

    for var, field in ENV_FIELDS.items():
        raw = env.get(var, "").strip()
        if raw:
            values[field] = raw

    raw_tags = env.get("STEAMCHARTS_TAGS", "").strip()
    if raw_tags:
        values["tags"] = [t.strip() for t in raw_tags.split(",") if t.strip()]

    for key, val in overrides.items():
        if val is not None:
            values[key] = val

    return Settings(**values)


# ---------------------------
# Pydantic models for the output documents
# ---------------------------

class FinalRecord(BaseModel):
    """
    One ranked game in the published dataset.
    Immutable once ranked.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    current_metric: int = Field(gt=0)
    peak_metric: int = Field(ge=0)
    trend: Literal["stable", "down"]
    rank: int = Field(ge=1)
    origin_tag: str

    # SteamSpy details, when any source had them
    owners: Optional[str] = None
    positive: Optional[int] = None
    negative: Optional[int] = None
    average_playtime: Optional[int] = None
    median_playtime: Optional[int] = None
    price: Optional[int] = None
    initial_price: Optional[int] = None
    discount: Optional[int] = None
    genre: Optional[str] = None
    publisher: Optional[str] = None
    developer: Optional[str] = None
    tags: Optional[Dict[str, int]] = None


class DatasetMetadata(BaseModel):
    timestamp: str
    total_items: int = Field(ge=0)
    total_metric_sum: int = Field(ge=0)
    processed_count: int = Field(ge=0)
    failed_count: int = Field(ge=0)
    duration_seconds: float = Field(ge=0)
    total_scanned: int = Field(0, ge=0)


class Dataset(BaseModel):
    """
    Rank-ordered records plus run metadata.
    """

    metadata: DatasetMetadata
    items: List[FinalRecord]

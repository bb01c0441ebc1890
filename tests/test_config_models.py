from pathlib import Path

import pytest
from pydantic import ValidationError

from steamcharts.config import (
    CHECKPOINT_FILENAME,
    DEFAULT_CONCURRENCY,
    DEFAULT_TAGS,
    DEFAULT_TARGET_GAMES,
    FinalRecord,
    Settings,
    load_settings,
)


def test_settings_defaults():
    s = load_settings(env={})
    assert s.concurrency == DEFAULT_CONCURRENCY
    assert s.target_size == 0
    assert s.window_delay == 0.0
    assert s.seed is None
    assert s.target_games == DEFAULT_TARGET_GAMES
    assert s.tags == DEFAULT_TAGS


def test_settings_from_env_strings():
    env = {
        "STEAMCHARTS_CONCURRENCY": "4",
        "STEAMCHARTS_WINDOW_DELAY": "0.5",
        "STEAMCHARTS_MIN_REQUIRED": "100",
        "STEAMCHARTS_OUTPUT_DIR": "/tmp/charts",
        "STEAMCHARTS_SEED": "7",
        "STEAMCHARTS_TAGS": "Indie, RPG ,,",
        "STEAMCHARTS_MAX_RETRIES": "",
        "STEAMCHARTS_TARGET_GAMES": "500",
    }
    s = load_settings(env=env)
    assert s.concurrency == 4
    assert s.window_delay == 0.5
    assert s.min_required == 100
    assert s.output_dir == Path("/tmp/charts")
    assert s.checkpoint_path == Path("/tmp/charts") / CHECKPOINT_FILENAME
    assert s.seed == 7
    assert s.tags == ["Indie", "RPG"]
    assert s.max_retries == 3
    assert s.target_games == 500


def test_overrides_beat_env_and_none_is_ignored():
    s = load_settings(env={"STEAMCHARTS_CONCURRENCY": "4"}, concurrency=8, target_size=None)
    assert s.concurrency == 8
    assert s.target_size == 0


def test_settings_reject_bad_values():
    with pytest.raises(ValidationError):
        Settings(concurrency=0)
    with pytest.raises(ValidationError):
        load_settings(env={"STEAMCHARTS_WINDOW_DELAY": "-1"})


def test_final_record_is_frozen_and_positive():
    rec = FinalRecord(
        id=730,
        name="Counter-Strike 2",
        current_metric=1000,
        peak_metric=1200,
        trend="stable",
        rank=1,
        origin_tag="steam-charts",
    )
    with pytest.raises(ValidationError):
        rec.rank = 2
    with pytest.raises(ValidationError):
        FinalRecord(id=1, name="x", current_metric=0, peak_metric=0, trend="stable", rank=1, origin_tag="t")


def test_final_record_trend_is_restricted():
    with pytest.raises(ValidationError):
        FinalRecord(id=1, name="x", current_metric=5, peak_metric=5, trend="sideways", rank=1, origin_tag="t")


def test_final_record_details_are_optional():
    rec = FinalRecord(
        id=440,
        name="Team Fortress 2",
        current_metric=50_000,
        peak_metric=60_000,
        trend="down",
        rank=3,
        origin_tag="steamspy",
        price=0,
        tags={"Free to Play": 120},
    )
    assert rec.price == 0
    assert rec.tags == {"Free to Play": 120}
    assert rec.owners is None

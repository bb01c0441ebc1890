from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List

from loguru import logger

from .config import (
    CHARTS_FILENAME,
    CHARTS_MIN_FILENAME,
    DATASET_SOURCE,
    DATASET_VERSION,
    SUMMARY_FILENAME,
    SUMMARY_TOP_K,
    Dataset,
    FinalRecord,
)


# ---------------------------
# Document shapes
# ---------------------------

# FinalRecord field -> document key, emitted only when set
DETAIL_KEYS = {
    "owners": "owners",
    "positive": "positive",
    "negative": "negative",
    "average_playtime": "averagePlaytime",
    "median_playtime": "medianPlaytime",
    "price": "price",
    "initial_price": "initialPrice",
    "discount": "discount",
    "genre": "genre",
    "publisher": "publisher",
    "developer": "developer",
    "tags": "tags",
}


def record_to_dict(rec: FinalRecord) -> Dict:
    out = {
        "id": rec.id,
        "name": rec.name,
        "currentMetric": rec.current_metric,
        "peakMetric": rec.peak_metric,
        "trend": rec.trend,
        "rank": rec.rank,
        "originTag": rec.origin_tag,
    }
    for field, key in DETAIL_KEYS.items():
        value = getattr(rec, field)
        if value is not None:
            out[key] = value
    return out


def metadata_to_dict(dataset: Dataset, min_required: int = 0) -> Dict:
    md = dataset.metadata
    met = md.total_items >= min_required
    return {
        "timestamp": md.timestamp,
        "totalItems": md.total_items,
        "totalMetricSum": md.total_metric_sum,
        "processedCount": md.processed_count,
        "failedCount": md.failed_count,
        "durationSeconds": md.duration_seconds,
        "totalScanned": md.total_scanned,
        "source": DATASET_SOURCE,
        "version": DATASET_VERSION,
        "requirement": f"Minimum {min_required} items - {'MET' if met else 'FAILED'}",
    }


def dataset_to_document(dataset: Dataset, min_required: int = 0) -> Dict:
    """
    ``{"metadata": {...}, "items": {"<id>": record}}``; items keep rank order
    because dicts preserve insertion order.
    """
    return {
        "metadata": metadata_to_dict(dataset, min_required),
        "items": {str(rec.id): record_to_dict(rec) for rec in dataset.items},
    }


def dataset_to_summary(dataset: Dataset, top_k: int = SUMMARY_TOP_K, min_required: int = 0) -> Dict:
    top: List[Dict] = [
        {
            "name": rec.name,
            "id": rec.id,
            "currentMetric": rec.current_metric,
            "rank": rec.rank,
        }
        for rec in dataset.items[:top_k]
    ]
    return {"metadata": metadata_to_dict(dataset, min_required), "topItems": top}


# ---------------------------
# Writers
# ---------------------------

def write_outputs(dataset: Dataset, output_dir: Path, min_required: int = 0) -> List[Path]:
    """
    Write the pretty, minified and summary documents. Returns the paths written.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    doc = dataset_to_document(dataset, min_required)

    full_path = output_dir / CHARTS_FILENAME
    full_path.write_text(json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Data saved to {}", full_path)

    min_path = output_dir / CHARTS_MIN_FILENAME
    min_path.write_text(json.dumps(doc, separators=(",", ":"), ensure_ascii=False), encoding="utf-8")
    logger.info("Minified data saved to {}", min_path)

    summary_path = output_dir / SUMMARY_FILENAME
    summary = dataset_to_summary(dataset, min_required=min_required)
    summary_path.write_text(json.dumps(summary, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Summary saved to {}", summary_path)

    return [full_path, min_path, summary_path]

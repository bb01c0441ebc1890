from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from .config import CHECKPOINT_TOP_K
from .pipeline_types import PipelineContext


class Checkpointer:
    """
    Best-effort partial snapshots while the fetcher runs.

    A snapshot is written each time the processed count crosses a multiple of
    ``interval``. Snapshots are advisory: nothing reads them back, and a
    failed write is logged and otherwise ignored.
    """

    def __init__(
        self,
        path: Path,
        interval: int,
        names: Optional[Dict[int, str]] = None,
        top_k: int = CHECKPOINT_TOP_K,
    ):
        self.path = Path(path)
        self.interval = interval
        self.names = names or {}
        self.top_k = top_k
        self._last_boundary = 0
        self.writes = 0

    def snapshot(self, ctx: PipelineContext) -> Dict:
        top = sorted(
            (o for o in ctx.outcomes.values() if o.succeeded and o.metric > 0),
            key=lambda o: o.metric,
            reverse=True,
        )[: self.top_k]
        top_rows: List[Dict] = [
            {"id": o.id, "name": self.names.get(o.id), "currentMetric": o.metric}
            for o in top
        ]
        return {
            "partial": True,
            "processed": ctx.processed,
            "failed": ctx.failed,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "topResultsSoFar": top_rows,
        }

    def __call__(self, ctx: PipelineContext) -> None:
        if self.interval <= 0:
            return
        boundary = ctx.processed // self.interval
        if boundary <= self._last_boundary:
            return
        self._last_boundary = boundary
        self.write(ctx)

    def write(self, ctx: PipelineContext) -> bool:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            payload = json.dumps(self.snapshot(ctx), indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Checkpoint write to {} failed: {}", self.path, e)
            return False

        self.writes += 1
        logger.info("Checkpoint: {} processed, written to {}", ctx.processed, self.path)
        return True

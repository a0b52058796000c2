"""JSON-lines logger for pipeline runs."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class Logger:
    """Writes pipeline events to <log_dir>/pipeline.log, one JSON object per line."""

    def __init__(self, log_dir: Path, filename: str = "pipeline.log") -> None:
        self.logs_dir = Path(log_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.logs_dir / filename

    def _write(self, payload: dict) -> None:
        entry = {"timestamp": datetime.now(timezone.utc).isoformat(), **payload}
        with self.path.open("a", encoding="utf-8") as fp:
            fp.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def log_run_start(self, run_id: str, input_chars: int, prior_turns: int) -> None:
        self._write({"event": "run_start", "run_id": run_id, "input_chars": input_chars, "prior_turns": prior_turns})

    def log_stage_start(self, run_id: str, stage: str, width: int) -> None:
        self._write({"event": "stage_start", "run_id": run_id, "stage": stage, "width": width})

    def log_stage_complete(self, run_id: str, stage: str, elapsed: float) -> None:
        self._write({"event": "stage_complete", "run_id": run_id, "stage": stage, "elapsed": round(elapsed, 3)})

    def log_stage_failed(
        self, run_id: str, stage: str, index: Optional[int], role: Optional[str], reason: str
    ) -> None:
        self._write(
            {
                "event": "stage_failed",
                "run_id": run_id,
                "stage": stage,
                "index": index,
                "role": role,
                "reason": reason,
            }
        )

    def log_run_complete(self, run_id: str, elapsed: float, answer_chars: int) -> None:
        self._write(
            {"event": "run_complete", "run_id": run_id, "elapsed": round(elapsed, 3), "answer_chars": answer_chars}
        )

    def log_run_failed(self, run_id: str, stage: str, reason: str) -> None:
        self._write({"event": "run_failed", "run_id": run_id, "stage": stage, "reason": reason})

    def log_observer_error(self, run_id: str, status: str, reason: str) -> None:
        self._write({"event": "observer_error", "run_id": run_id, "status": status, "reason": reason})

    def read_events(self) -> list:
        """Load logged events (used by diagnostics and tests)."""
        if not self.path.exists():
            return []
        return [json.loads(line) for line in self.path.read_text(encoding="utf-8").splitlines() if line.strip()]

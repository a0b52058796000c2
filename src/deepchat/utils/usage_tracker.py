"""Usage tracking utilities for model calls."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


@dataclass
class UsageRecord:
    provider: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    success: bool = True
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class UsageTracker:
    """Tracks token usage across the agent calls of a session."""

    def __init__(self) -> None:
        self.records: List[UsageRecord] = []

    def record_usage(self, provider: str, model: str, usage: Optional[object]) -> None:
        """Store a usage record for a successful call."""
        prompt_tokens = self._read_field(usage, "prompt_tokens")
        completion_tokens = self._read_field(usage, "completion_tokens")
        total_tokens = self._read_field(usage, "total_tokens") or prompt_tokens + completion_tokens
        self.records.append(
            UsageRecord(
                provider=provider,
                model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=total_tokens,
            )
        )

    def record_failure(self, provider: str, model: str) -> None:
        self.records.append(UsageRecord(provider=provider, model=model, success=False))

    def get_stats(self, provider: Optional[str] = None, model: Optional[str] = None) -> Dict[str, float]:
        """Return aggregated stats filtered by provider/model."""
        filtered = [
            r
            for r in self.records
            if (provider is None or r.provider == provider) and (model is None or r.model == model)
        ]
        stats = defaultdict(float)
        for r in filtered:
            stats["requests"] += 1
            stats["prompt_tokens"] += r.prompt_tokens
            stats["completion_tokens"] += r.completion_tokens
            stats["total_tokens"] += r.total_tokens
            if not r.success:
                stats["errors"] += 1
        return dict(stats)

    def reset(self) -> None:
        """Clear recorded usage."""
        self.records.clear()

    def _read_field(self, usage: Optional[object], field: str) -> int:
        if usage is None:
            return 0
        if isinstance(usage, dict):
            return int(usage.get(field) or 0)
        return int(getattr(usage, field, 0) or 0)

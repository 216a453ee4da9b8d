from dataclasses import dataclass, field


@dataclass
class WriteBucket:
    total: int = 0
    errors: int = 0
    latency_total_ms: float = 0.0

    def record(self, duration_ms: float, error: bool) -> None:
        self.total += 1
        if error:
            self.errors += 1
        self.latency_total_ms += duration_ms

    def snapshot(self) -> dict[str, float | int]:
        avg = self.latency_total_ms / self.total if self.total else 0.0
        return {
            "total": self.total,
            "errors": self.errors,
            "avg_latency_ms": round(avg, 2),
        }


@dataclass
class RefreshBucket:
    emitted: int = 0
    failed: int = 0
    discarded: int = 0

    def snapshot(self) -> dict[str, int]:
        return {
            "emitted": self.emitted,
            "failed": self.failed,
            "discarded": self.discarded,
        }


@dataclass
class SyncMetrics:
    writes: WriteBucket = field(default_factory=WriteBucket)
    refreshes: RefreshBucket = field(default_factory=RefreshBucket)
    reservation_conflicts: int = 0

    def record_write(self, duration_ms: float, error: bool) -> None:
        self.writes.record(duration_ms, error)

    def record_emitted(self) -> None:
        self.refreshes.emitted += 1

    def record_refresh_failed(self) -> None:
        self.refreshes.failed += 1

    def record_discarded(self, count: int = 1) -> None:
        self.refreshes.discarded += count

    def record_conflict(self) -> None:
        self.reservation_conflicts += 1

    def snapshot(self) -> dict[str, object]:
        return {
            "writes": self.writes.snapshot(),
            "refreshes": self.refreshes.snapshot(),
            "reservation_conflicts": self.reservation_conflicts,
        }

"""Destinations for per-turn telemetry records."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from schemas.responses import TelemetryRecord

logger = logging.getLogger(__name__)


class TelemetrySink(ABC):
    """Receives one record per post-processed turn."""

    @abstractmethod
    def record(self, record: TelemetryRecord):
        pass


class LoggingTelemetrySink(TelemetrySink):
    """Writes a one-line summary of each record to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def record(self, record: TelemetryRecord):
        corrections = sum(1 for f in record.findings if not f.valid)
        logger.log(
            self.level,
            f"turn={record.turn_id} user={record.user_id} "
            f"findings={len(record.findings)} corrections={corrections} "
            f"fallback={record.used_fallback} latency_ms={record.latency_ms:.1f} "
            f"skipped={','.join(record.skipped_features) or '-'}"
        )


class InMemoryTelemetrySink(TelemetrySink):
    """Keeps records in a list, most recent last."""

    def __init__(self, max_records: Optional[int] = None):
        self.max_records = max_records
        self.records: list[TelemetryRecord] = []

    def record(self, record: TelemetryRecord):
        self.records.append(record)
        if self.max_records is not None and len(self.records) > self.max_records:
            del self.records[0]

    def for_conversation(self, conversation_id: str) -> list[TelemetryRecord]:
        return [r for r in self.records if r.conversation_id == conversation_id]

    def clear(self):
        self.records.clear()

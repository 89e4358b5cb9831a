from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from firstaid.models.schemas import Assessment, EmergencyRecord, Location

logger = logging.getLogger(__name__)


class EmergencyLogger(Protocol):
    async def log(self, assessment: Assessment, location: Optional[Location]) -> None:
        ...


class InMemoryEmergencyLog:
    """Audit trail of submitted assessments, kept for the life of the process."""

    def __init__(self, emergency_type: str = "road_accident"):
        self.emergency_type = emergency_type
        self._records: Dict[str, EmergencyRecord] = {}

    async def log(self, assessment: Assessment, location: Optional[Location]) -> None:
        await self.create(assessment, location)

    async def create(
        self,
        assessment: Assessment,
        location: Optional[Location],
        emergency_type: Optional[str] = None,
    ) -> EmergencyRecord:
        record = EmergencyRecord.from_assessment(
            assessment, location, emergency_type or self.emergency_type
        )
        self._records[record.id] = record
        logger.info(
            "emergency logged id=%s type=%s conscious=%s breathing=%s bleeding=%s",
            record.id,
            record.emergency_type,
            record.is_conscious,
            record.is_breathing,
            record.has_heavy_bleeding,
        )
        return record

    def records(self) -> List[EmergencyRecord]:
        return sorted(self._records.values(), key=lambda r: r.timestamp)

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class Question(str, Enum):
    # Asked in this order: Q1, Q2, Q3
    IS_CONSCIOUS = "is_conscious"
    IS_BREATHING = "is_breathing"
    HAS_HEAVY_BLEEDING = "has_heavy_bleeding"

    @classmethod
    def ordered(cls) -> List["Question"]:
        return [cls.IS_CONSCIOUS, cls.IS_BREATHING, cls.HAS_HEAVY_BLEEDING]


class Step(str, Enum):
    IDLE = "idle"
    ASKING_Q1 = "asking_q1"
    ASKING_Q2 = "asking_q2"
    ASKING_Q3 = "asking_q3"
    COMPLETE = "complete"


ASKING_STEPS = [Step.ASKING_Q1, Step.ASKING_Q2, Step.ASKING_Q3]


class Priority(str, Enum):
    CRITICAL = "critical"
    URGENT = "urgent"
    MODERATE = "moderate"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    # Ordered by severity, not alphabetically as the str base would
    def __lt__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def highest(cls, *priorities: "Priority") -> "Priority":
        return max(priorities)


_PRIORITY_RANK = {
    Priority.MODERATE: 0,
    Priority.URGENT: 1,
    Priority.CRITICAL: 2,
}


class Assessment(BaseModel):
    """Bystander answers; ``None`` means the question is still unanswered."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_conscious: Optional[bool] = Field(None, alias="isConscious")
    is_breathing: Optional[bool] = Field(None, alias="isBreathing")
    has_heavy_bleeding: Optional[bool] = Field(None, alias="hasHeavyBleeding")

    def get(self, question: Question) -> Optional[bool]:
        return getattr(self, question.value)

    def with_answer(self, question: Question, value: bool) -> "Assessment":
        return self.model_copy(update={question.value: value})

    def cleared(self, question: Question) -> "Assessment":
        return self.model_copy(update={question.value: None})

    @property
    def missing(self) -> List[Question]:
        return [q for q in Question.ordered() if self.get(q) is None]

    @property
    def answered_count(self) -> int:
        return 3 - len(self.missing)

    @property
    def is_complete(self) -> bool:
        return not self.missing


class GuidanceResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    instructions: List[str]
    show_cpr: bool = Field(False, alias="showCPR")
    priority: Priority


class GuidanceSource(str, Enum):
    LOCAL = "local"
    ENHANCED = "enhanced"


class GuidanceState(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    result: GuidanceResult
    source: GuidanceSource = GuidanceSource.LOCAL
    is_enhancing: bool = Field(False, alias="isEnhancing")
    generation: int = 0


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0, description="Accuracy radius in metres")


class PlaceCategory(str, Enum):
    HOSPITAL = "hospital"
    PHARMACY = "pharmacy"
    MEDICAL_STORE = "medical_store"


class NearbyPlace(BaseModel):
    name: str
    address: str
    distance: str
    distance_m: float
    latitude: float
    longitude: float
    category: PlaceCategory
    ownership: Optional[str] = None
    facility_type: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[str] = None


class NearbyPlaces(BaseModel):
    hospitals: List[NearbyPlace] = Field(default_factory=list)
    pharmacies: List[NearbyPlace] = Field(default_factory=list)
    medical_stores: List[NearbyPlace] = Field(default_factory=list)
    source: str = "openstreetmap"

    @property
    def total(self) -> int:
        return len(self.hospitals) + len(self.pharmacies) + len(self.medical_stores)


class FacilitySearch(BaseModel):
    status: Literal["found", "empty", "error", "no_location"]
    places: NearbyPlaces = Field(default_factory=NearbyPlaces)
    message: Optional[str] = None
    retryable: bool = False


class SessionSnapshot(BaseModel):
    session_id: str
    step: Step
    assessment: Assessment
    guidance: Optional[GuidanceState] = None
    location: Optional[Location] = None


def _as_text(value: Optional[bool]) -> str:
    return "null" if value is None else str(value).lower()


class EmergencyRecord(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    emergency_type: str = "road_accident"
    is_conscious: str
    is_breathing: str
    has_heavy_bleeding: str

    @classmethod
    def from_assessment(
        cls,
        assessment: Assessment,
        location: Optional[Location] = None,
        emergency_type: str = "road_accident",
    ) -> "EmergencyRecord":
        return cls(
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            emergency_type=emergency_type,
            is_conscious=_as_text(assessment.is_conscious),
            is_breathing=_as_text(assessment.is_breathing),
            has_heavy_bleeding=_as_text(assessment.has_heavy_bleeding),
        )


class ShareLinks(BaseModel):
    maps: Optional[str] = None
    whatsapp: str
    sms: str
    call_ambulance: str
    call_police: str


# Request bodies for the HTTP surface

class AnswerRequest(BaseModel):
    question: Question
    value: bool


class EmergencyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    assessment: Assessment
    location: Optional[Location] = None
    emergency_type: Optional[str] = Field(None, alias="emergencyType")

"""
Entity models

Canonical shapes of the records the storage layer hands to callers. JSON
produced from these models (local storage, HTTP API) uses the camelCase
aliases the web client has always written.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

PLACEHOLDER = "Unknown"
DEFAULT_CATEGORY = "general"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_local_id() -> str:
    return uuid.uuid4().hex


class Importance(str, Enum):
    """Three-level importance used by the remote memories table"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PrivacyMode(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_storage(self) -> Dict[str, Any]:
        """JSON-compatible dict using the client-facing aliases."""
        return self.model_dump(mode="json", by_alias=True)


class MemoryDraft(_Record):
    """User input for a new memory"""
    title: str = Field(default="", description="Short title, must not be blank")
    description: str = Field(default="", description="Free-text description")
    category: str = Field(default=DEFAULT_CATEGORY, description="Single category label")
    rating: int = Field(default=3, ge=1, le=5, description="Importance rating 1-5")
    date: Optional[str] = Field(default=None, description="When the memory happened")


class Memory(MemoryDraft):
    """Stored memory"""
    id: str = Field(description="Memory ID")
    created_at: Optional[str] = Field(default=None, description="Creation time")
    updated_at: Optional[str] = Field(default=None, description="Last update time")


class ImportantDate(_Record):
    date: str
    description: str = ""


class ClothingSizes(_Record):
    shirt: Optional[str] = None
    pants: Optional[str] = None
    shoe: Optional[str] = None
    ring: Optional[str] = None

    def is_empty(self) -> bool:
        return not any((self.shirt, self.pants, self.shoe, self.ring))


class PartnerProfile(_Record):
    """Partner profile, at most one per user"""
    id: Optional[str] = Field(default=None, description="Profile ID")
    name: str = Field(default="", description="Partner name")
    favorite_color: str = Field(default=PLACEHOLDER, alias="favoriteColor")
    favorite_food: str = Field(default=PLACEHOLDER, alias="favoriteFood")
    favorite_hobbies: List[str] = Field(default_factory=list, alias="favoriteHobbies")
    important_dates: List[ImportantDate] = Field(default_factory=list, alias="importantDates")
    notes: str = Field(default="", description="Free-text notes")
    birthday: Optional[str] = None
    anniversary: Optional[str] = None
    love_languages: List[str] = Field(default_factory=list, alias="loveLanguages")
    favorite_things: Optional[str] = Field(default=None, alias="favoriteThings")
    dislikes: Optional[str] = None
    sizes: ClothingSizes = Field(default_factory=ClothingSizes)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PlanDraft(_Record):
    """User input for a new plan"""
    title: str = Field(default="", description="Plan title")
    description: str = Field(default="", description="Plan description")
    date: Optional[str] = Field(default=None, description="Scheduled date, defaults to creation time")
    category: str = Field(default=DEFAULT_CATEGORY)
    priority: Priority = Field(default=Priority.MEDIUM)
    completed: bool = False


class Plan(PlanDraft):
    id: str = Field(description="Plan ID")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AppSettings(_Record):
    """Per-user application settings"""
    id: Optional[str] = None
    notifications: bool = True
    privacy: PrivacyMode = PrivacyMode.PRIVATE
    user_name: Optional[str] = Field(default=None, alias="userName")
    locale: Optional[str] = None
    currency: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PlanSuggestion(_Record):
    """AI generated plan idea"""
    title: str
    description: str = ""
    budget_min: int = Field(default=0, alias="budgetMin")
    budget_max: int = Field(default=0, alias="budgetMax")
    duration_minutes: int = Field(default=0, alias="durationMinutes")
    difficulty: Difficulty = Difficulty.EASY
    steps: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    reasoning: str = ""
    confidence: int = Field(default=0, ge=0, le=100)


class MemoryAnalysis(_Record):
    emotional_keywords: List[str] = Field(default_factory=list, alias="emotionalKeywords")
    activity_patterns: Dict[str, int] = Field(default_factory=dict, alias="activityPatterns")
    temporal_patterns: Dict[str, int] = Field(default_factory=dict, alias="temporalPatterns")
    high_value_memories: List[Dict[str, Any]] = Field(default_factory=list, alias="highValueMemories")
    total_memories: int = Field(default=0, alias="totalMemories")
    average_rating: float = Field(default=0.0, alias="averageRating")


__all__ = [
    "PLACEHOLDER",
    "DEFAULT_CATEGORY",
    "now_iso",
    "new_local_id",
    "Importance",
    "Priority",
    "PrivacyMode",
    "Difficulty",
    "MemoryDraft",
    "Memory",
    "ImportantDate",
    "ClothingSizes",
    "PartnerProfile",
    "PlanDraft",
    "Plan",
    "AppSettings",
    "PlanSuggestion",
    "MemoryAnalysis",
]

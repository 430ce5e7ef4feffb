"""Data models for the devflow daemon."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, date, timezone
from enum import Enum
from typing import List, Dict, Any, Optional


class Category(str, Enum):
    """Closed set of entry categories."""
    CODE_SNIPPET = "code_snippet"
    LEARNING_NOTE = "learning_note"
    IDEA = "idea"
    BUG_FIX = "bug_fix"
    GENERAL = "general"
    TASK = "task"

    @property
    def label(self) -> str:
        """Category name as searchable words ('bug_fix' -> 'bug fix')."""
        return self.value.replace("_", " ")

    @classmethod
    def coerce(cls, value: Any) -> "Category":
        """Map any oracle value onto the enumeration, unknown -> GENERAL."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.GENERAL


class DetectedLanguage(str, Enum):
    """Languages the classifier recognises."""
    ENGLISH = "en"
    HINDI = "hi"
    MARATHI = "mr"
    HINGLISH = "hinglish"
    MIXED = "mixed"

    @classmethod
    def coerce(cls, value: Any) -> "DetectedLanguage":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            aliases = {
                "english": cls.ENGLISH,
                "hindi": cls.HINDI,
                "marathi": cls.MARATHI,
            }
            if normalized in aliases:
                return aliases[normalized]
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.ENGLISH


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def coerce(cls, value: Any) -> Optional["Priority"]:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class CodeType(str, Enum):
    FUNCTION = "function"
    CLASS = "class"
    SNIPPET = "snippet"
    CONFIG = "config"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> Optional["CodeType"]:
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.OTHER


class SearchIntent(str, Enum):
    FIND = "find"
    FILTER = "filter"
    SUMMARIZE = "summarize"

    @classmethod
    def coerce(cls, value: Any) -> "SearchIntent":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.FIND


class OutcomeSource(str, Enum):
    """Which path produced a classification."""
    ORACLE = "oracle"
    FALLBACK = "fallback"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass
class SlangTerm:
    """A slang expression detected in an entry."""
    term: str
    meaning: str
    confidence: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ClassificationRecord:
    """
    Structured metadata produced for one piece of captured text.

    Produced by the single-entry and bulk classifiers, either from the
    oracle (after repair) or from the rule-based fallback.
    """
    content: str
    translated_content: str
    detected_language: DetectedLanguage
    category: Category
    tags: List[str] = field(default_factory=list)
    confidence: float = 0.7
    reasoning: str = ""
    due_date: Optional[date] = None
    priority: Optional[Priority] = None
    action_items: Optional[List[str]] = None
    code_language: Optional[str] = None
    code_type: Optional[CodeType] = None
    contains_slang: bool = False
    slang_terms: Optional[List[SlangTerm]] = None
    is_completed: bool = False


@dataclass
class Entry:
    """One stored, classified piece of captured text."""
    id: str
    created_at: datetime
    updated_at: datetime
    content: str
    category: Category
    detected_language: DetectedLanguage = DetectedLanguage.ENGLISH
    translated_content: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    confidence: float = 0.5
    reasoning: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[Priority] = None
    action_items: Optional[List[str]] = None
    code_language: Optional[str] = None
    code_type: Optional[CodeType] = None
    contains_slang: bool = False
    slang_terms: Optional[List[SlangTerm]] = None
    is_completed: bool = False
    owner_id: str = "anonymous"

    @classmethod
    def from_record(
        cls,
        record: ClassificationRecord,
        owner_id: str = "anonymous",
        now: Optional[datetime] = None
    ) -> "Entry":
        """Build an unsaved entry (empty id) from a classification record."""
        now = now or utc_now()
        return cls(
            id="",
            created_at=now,
            updated_at=now,
            content=record.content,
            translated_content=record.translated_content or record.content,
            detected_language=record.detected_language,
            category=record.category,
            tags=list(record.tags),
            confidence=record.confidence,
            reasoning=record.reasoning,
            due_date=record.due_date,
            priority=record.priority,
            action_items=record.action_items,
            code_language=record.code_language,
            code_type=record.code_type,
            contains_slang=record.contains_slang,
            slang_terms=record.slang_terms,
            is_completed=record.is_completed,
            owner_id=owner_id
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation (enums as values, ISO dates)."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "content": self.content,
            "translated_content": self.translated_content,
            "detected_language": self.detected_language.value,
            "category": self.category.value,
            "tags": list(self.tags),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "priority": self.priority.value if self.priority else None,
            "action_items": self.action_items,
            "code_language": self.code_language,
            "code_type": self.code_type.value if self.code_type else None,
            "contains_slang": self.contains_slang,
            "slang_terms": [t.to_dict() for t in self.slang_terms] if self.slang_terms else None,
            "is_completed": self.is_completed,
            "owner_id": self.owner_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entry":
        slang = data.get("slang_terms")
        return cls(
            id=data.get("id", ""),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data.get("updated_at") or data["created_at"]),
            content=data["content"],
            translated_content=data.get("translated_content"),
            detected_language=DetectedLanguage.coerce(data.get("detected_language")),
            category=Category.coerce(data.get("category")),
            tags=list(data.get("tags") or []),
            confidence=float(data.get("confidence", 0.5)),
            reasoning=data.get("reasoning"),
            due_date=parse_date(data.get("due_date")),
            priority=Priority.coerce(data.get("priority")),
            action_items=data.get("action_items"),
            code_language=data.get("code_language"),
            code_type=CodeType.coerce(data.get("code_type")),
            contains_slang=bool(data.get("contains_slang", False)),
            slang_terms=[SlangTerm(**t) for t in slang] if slang else None,
            is_completed=bool(data.get("is_completed", False)),
            owner_id=data.get("owner_id", "anonymous")
        )


@dataclass
class TimeRange:
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass
class QueryExpansion:
    """Oracle-derived broadening of a search query. Never persisted."""
    expanded_query: str
    categories: List[Category]
    keywords: List[str]
    intent: SearchIntent = SearchIntent.FIND
    time_range: Optional[TimeRange] = None


@dataclass
class ScoredEntry:
    entry: Entry
    score: int


@dataclass
class ClassificationOutcome:
    """Tagged result of a single-entry classification."""
    source: OutcomeSource
    record: ClassificationRecord
    reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == OutcomeSource.FALLBACK


@dataclass
class BulkOutcome:
    """Tagged result of a bulk classification."""
    source: OutcomeSource
    records: List[ClassificationRecord]
    reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == OutcomeSource.FALLBACK

"""Structured output shapes requested from the oracle.

Fields are deliberately lenient: the oracle is asked for a JSON object
matching these models, and anything outside the closed enumerations is
coerced here rather than rejected, so one bad field never throws away an
otherwise usable classification.
"""

from datetime import date
from typing import List, Optional, Any

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .models import Category, DetectedLanguage, Priority, CodeType, SearchIntent, parse_date


class OracleSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SlangTermSchema(OracleSchema):
    term: str = Field(alias="original")
    meaning: str = ""
    confidence: Optional[float] = None

    @field_validator("meaning", mode="before")
    @classmethod
    def blank_meaning(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def loose_confidence(cls, v: Any) -> Optional[float]:
        try:
            return float(v) if v is not None else None
        except (TypeError, ValueError):
            return None


class ClassificationSchema(OracleSchema):
    """Full metadata for one piece of text."""

    detected_language: DetectedLanguage = Field(
        default=DetectedLanguage.ENGLISH, alias="detectedLanguage",
        description="Language of the input: en, hi, mr, hinglish or mixed"
    )
    translated_content: Optional[str] = Field(
        default=None, alias="translatedContent",
        description="English translation of the input; the input itself if already English"
    )
    category: Category = Field(
        default=Category.GENERAL,
        description="One of code_snippet, learning_note, idea, bug_fix, general, task"
    )
    tags: List[str] = Field(default_factory=list, description="3-5 lowercase keywords")
    due_date: Optional[date] = Field(
        default=None, alias="dueDate",
        description="Absolute due date (YYYY-MM-DD) for tasks"
    )
    priority: Optional[Priority] = Field(default=None, description="low, medium, high or urgent")
    action_items: Optional[List[str]] = Field(default=None, alias="actionItems")
    code_language: Optional[str] = Field(
        default=None, alias="language",
        description="Programming language for code snippets"
    )
    code_type: Optional[CodeType] = Field(
        default=None, alias="codeType",
        description="function, class, snippet, config or other"
    )
    contains_slang: bool = Field(default=False, alias="containsSlang")
    slang_terms: Optional[List[SlangTermSchema]] = Field(default=None, alias="slangTerms")
    confidence: Optional[float] = Field(default=None, description="Confidence between 0 and 1")
    reasoning: Optional[str] = None

    @field_validator("detected_language", mode="before")
    @classmethod
    def coerce_language(cls, v: Any) -> DetectedLanguage:
        return DetectedLanguage.coerce(v)

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> Category:
        return Category.coerce(v)

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, v: Any) -> Optional[Priority]:
        return Priority.coerce(v)

    @field_validator("code_type", mode="before")
    @classmethod
    def coerce_code_type(cls, v: Any) -> Optional[CodeType]:
        return CodeType.coerce(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Any) -> Optional[date]:
        return parse_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v: Any) -> List[str]:
        if not v:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(t).strip() for t in v if str(t).strip()]

    @field_validator("action_items", mode="before")
    @classmethod
    def clean_action_items(cls, v: Any) -> Optional[List[str]]:
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        return [str(item).strip() for item in v if item is not None and str(item).strip()]

    @field_validator("slang_terms", mode="before")
    @classmethod
    def usable_slang_terms(cls, v: Any) -> Optional[List[Any]]:
        # A term without its original text carries nothing to display
        if v is None:
            return None
        if not isinstance(v, list):
            return []
        return [
            item for item in v
            if isinstance(item, SlangTermSchema)
            or (isinstance(item, dict) and item.get("original") not in (None, ""))
        ]

    @field_validator("code_language", "translated_content", "reasoning", mode="before")
    @classmethod
    def optional_text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("contains_slang", mode="before")
    @classmethod
    def as_bool(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def loose_confidence(cls, v: Any) -> Optional[float]:
        try:
            return float(v) if v is not None else None
        except (TypeError, ValueError):
            return None


class BulkItemSchema(ClassificationSchema):
    """One segment of a bulk input plus its completion status."""

    content: Optional[str] = Field(
        default=None,
        description="The original text of this item, without list markers"
    )
    is_completed: Optional[bool] = Field(default=None, alias="isCompleted")


class BulkClassificationSchema(OracleSchema):
    results: List[BulkItemSchema] = Field(
        default_factory=list,
        description="Tagged entries in the same order as the input"
    )


class TimeRangeSchema(OracleSchema):
    start: Optional[date] = None
    end: Optional[date] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_bound(cls, v: Any) -> Optional[date]:
        return parse_date(v)


class QueryExpansionSchema(OracleSchema):
    expanded_query: str = Field(
        alias="expandedQuery",
        description="Query expanded with synonyms and related terms"
    )
    categories: List[Category] = Field(
        default_factory=list,
        description="Categories likely relevant to this search"
    )
    keywords: List[str] = Field(default_factory=list, description="Key terms to search for")
    intent: SearchIntent = SearchIntent.FIND
    time_range: Optional[TimeRangeSchema] = Field(default=None, alias="timeRange")

    @field_validator("categories", mode="before")
    @classmethod
    def known_categories(cls, v: Any) -> List[Category]:
        known = {c.value for c in Category}
        result = []
        for item in v or []:
            value = item.value if isinstance(item, Category) else str(item).strip().lower()
            if value in known and Category(value) not in result:
                result.append(Category(value))
        return result

    @field_validator("keywords", mode="before")
    @classmethod
    def clean_keywords(cls, v: Any) -> List[str]:
        return [str(k).strip() for k in (v or []) if str(k).strip()]

    @field_validator("intent", mode="before")
    @classmethod
    def coerce_intent(cls, v: Any) -> SearchIntent:
        return SearchIntent.coerce(v)

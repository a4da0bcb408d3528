"""Structured shapes the LLM is asked to return; validated before use."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Sentiment = Literal["VERY_POSITIVE", "POSITIVE", "NEUTRAL", "NEGATIVE", "VERY_NEGATIVE"]


class _LLMModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CategoryScores(_LLMModel):
    taste: float = Field(default=0, ge=0, le=10)
    service: float = Field(default=0, ge=0, le=10)
    cleanliness: float = Field(default=0, ge=0, le=10)
    price: float = Field(default=0, ge=0, le=10)
    atmosphere: float = Field(default=0, ge=0, le=10)


class ReviewAnalysis(_LLMModel):
    sentiment: Sentiment
    sentimentScore: float = Field(ge=0, le=10)
    tags: list[str] = Field(default_factory=list, max_length=10)
    categories: CategoryScores = Field(default_factory=CategoryScores)
    insights: list[str] = Field(default_factory=list, max_length=5)
    summary: str = ""
    confidence: float = Field(default=0.5, ge=0, le=1)
    language: str = "tr"
    wordCount: int = 0

    @field_validator("sentiment", mode="before")
    @classmethod
    def _upper_sentiment(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper().replace(" ", "_")
        return value


class BusinessInsights(_LLMModel):
    strengths: list[str] = Field(default_factory=list, max_length=5)
    weaknesses: list[str] = Field(default_factory=list, max_length=5)
    recommendations: list[str] = Field(default_factory=list, max_length=5)
    overallScore: float = Field(ge=0, le=10)
    competitorAnalysis: str = ""
    marketPosition: str = ""
    trendsAnalysis: str = ""


class QueryEnhancement(_LLMModel):
    enhancedQuery: str
    suggestions: list[str] = Field(default_factory=list)


class QueryEntities(_LLMModel):
    businessType: str | None = None
    location: str | None = None
    timeRequirement: str | None = None
    priceRange: str | None = None
    specificFeatures: list[str] = Field(default_factory=list)
    mood: str | None = None


class SearchFilters(_LLMModel):
    category: str | None = None
    isOpen: bool | None = None
    priceRange: list[str] | None = None
    hasDelivery: bool | None = None
    minRating: float | None = Field(default=None, ge=0, le=5)
    distance: float | None = Field(default=None, ge=0)  # metres

    @field_validator("priceRange", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class QueryInterpretation(_LLMModel):
    interpretation: str = ""
    intent: str = "general_search"
    entities: QueryEntities = Field(default_factory=QueryEntities)
    searchTerms: list[str] = Field(default_factory=list)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    suggestions: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0, le=1)


class VoiceQuery(_LLMModel):
    text: str
    intent: str = "general_search"
    suggestions: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0, le=1)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    location: str | None = None


class StrategyItem(_LLMModel):
    type: str = ""
    reason: str = ""
    priority: str | None = None


class RecommendationStrategy(_LLMModel):
    strategy: str
    focusAreas: list[str] = Field(default_factory=list)
    recommendations: list[StrategyItem] = Field(default_factory=list)
    personalizedMessage: str = ""

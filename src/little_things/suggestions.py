from __future__ import annotations

"""AI plan suggestions built from the user's memories."""

import asyncio
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import SuggestionError, ValidationError
from .models import Memory, MemoryAnalysis, PartnerProfile, PlanSuggestion
from .settings import OpenAISettings, SuggestionSettings, settings

logger = logging.getLogger(__name__)

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

EMOTION_KEYWORDS = {
    "love": ("love", "adore", "favorite"),
    "happiness": ("happy", "joy", "excited"),
    "fun": ("fun", "laugh", "enjoy"),
    "romance": ("romantic", "intimate", "special"),
    "surprise": ("surprise", "unexpected", "amazed"),
}

PREFERENCE_KEYWORDS = ("loves", "likes", "enjoys", "favorite", "prefers", "adores", "obsessed with")

SYSTEM_PROMPT = (
    "You are a relationship expert who creates personalized date suggestions "
    "based on memory analysis. Always respond with valid JSON only."
)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def _parse_when(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def analyze_memories(memories: Sequence[Memory]) -> MemoryAnalysis:
    """Summarize every memory: emotions, categories, months and the highly rated ones."""
    emotional_keywords: List[str] = []
    for memory in memories:
        text = f"{memory.title} {memory.description}".lower()
        for emotion, words in EMOTION_KEYWORDS.items():
            if any(word in text for word in words):
                emotional_keywords.append(emotion)

    activity = Counter(memory.category for memory in memories)

    temporal: Counter = Counter()
    for memory in memories:
        when = _parse_when(memory.date or memory.created_at)
        if when is not None:
            temporal[MONTHS[when.month - 1]] += 1

    high_value = [
        {
            "title": m.title,
            "description": m.description,
            "category": m.category,
            "rating": m.rating,
        }
        for m in memories
        if m.rating >= 4
    ]

    total = len(memories)
    return MemoryAnalysis(
        emotional_keywords=emotional_keywords,
        activity_patterns=dict(activity),
        temporal_patterns=dict(temporal),
        high_value_memories=high_value,
        total_memories=total,
        average_rating=(sum(m.rating for m in memories) / total) if total else 0.0,
    )


class MemoryPatterns(BaseModel):
    top_categories: List[str] = Field(default_factory=list, alias="topCategories")
    preferences: List[str] = Field(default_factory=list)
    recent_trends: List[str] = Field(default_factory=list, alias="recentTrends")

    model_config = {"populate_by_name": True}


def analyze_memory_patterns(memories: Sequence[Memory], *, now: Optional[datetime] = None) -> MemoryPatterns:
    """Top categories, phrases after preference words, and categories from the last week."""
    counts = Counter(memory.category for memory in memories)
    top_categories = [category for category, _ in counts.most_common(5)]

    text = " ".join(f"{m.title} {m.description}" for m in memories).lower()
    preferences: List[str] = []
    for keyword in PREFERENCE_KEYWORDS:
        for match in re.finditer(rf"{re.escape(keyword)}\s+([^.!?]+)", text):
            phrase = match.group(1).strip()
            if phrase and phrase not in preferences:
                preferences.append(phrase)

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=7)
    recent: List[str] = []
    for memory in memories:
        created = _parse_when(memory.created_at)
        if created is not None and created > cutoff and memory.category not in recent:
            recent.append(memory.category)

    return MemoryPatterns(
        top_categories=top_categories,
        preferences=preferences[:5],
        recent_trends=recent[:3],
    )


def _ranked(counts: Dict[str, int]) -> str:
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ", ".join(f"{name} ({count}x)" for name, count in ordered)


def build_prompt(
    analysis: MemoryAnalysis,
    profile: Optional[PartnerProfile] = None,
    location: Optional[str] = None,
    patterns: Optional[MemoryPatterns] = None,
) -> str:
    profile = profile or PartnerProfile()
    high_value = "\n".join(
        f'- "{m["title"]}" ({m["category"]}, {m["rating"]}/5): {m["description"]}'
        for m in analysis.high_value_memories
    )
    lines = [
        f"Based on {analysis.total_memories} memories and the partner profile below, "
        "generate 3 personalized date or activity suggestions.",
        "",
        "PARTNER PROFILE:",
        f"- Name: {profile.name or 'Not specified'}",
        f"- Love languages: {', '.join(profile.love_languages) or 'Not specified'}",
        f"- Favorite things: {profile.favorite_things or 'Not specified'}",
        f"- Dislikes: {profile.dislikes or 'Not specified'}",
        f"- Hobbies: {', '.join(profile.favorite_hobbies) or 'Not specified'}",
        "",
        f"MEMORY ANALYSIS (average rating {analysis.average_rating:.1f}/5):",
        "High-value memories:",
        high_value or "- none",
        f"Emotional patterns: {', '.join(analysis.emotional_keywords) or 'none'}",
        f"Activity preferences: {_ranked(analysis.activity_patterns) or 'none'}",
        f"Seasonal patterns: {_ranked(analysis.temporal_patterns) or 'none'}",
    ]
    if patterns is not None:
        lines += [
            f"Top categories: {', '.join(patterns.top_categories) or 'none'}",
            f"Stated preferences: {'; '.join(patterns.preferences) or 'none'}",
            f"Recent trends: {', '.join(patterns.recent_trends) or 'none'}",
        ]
    if location:
        lines += ["", f"USER LOCATION: {location}"]
    lines += [
        "",
        "Return ONLY a JSON array. Each element has: title, description, budgetMin, "
        "budgetMax, durationMinutes, difficulty (Easy/Medium/Hard), steps, tags, "
        "reasoning, confidence (0-100).",
    ]
    return "\n".join(lines)


def parse_suggestions(text: str) -> List[Dict[str, Any]]:
    """Decode the model reply, falling back to the first ``[...]`` block in it."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_ARRAY.search(text)
        if not match:
            raise SuggestionError("Invalid JSON response from the model")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise SuggestionError("Invalid JSON response from the model") from exc
    if not isinstance(data, list) or not data:
        raise SuggestionError("Invalid suggestions format")
    return [item for item in data if isinstance(item, dict)]


@dataclass
class SuggestionResult:
    suggestions: List[PlanSuggestion]
    analysis: MemoryAnalysis
    patterns: MemoryPatterns


class SuggestionService:
    """Generates plan suggestions with the OpenAI chat completions API."""

    def __init__(
        self,
        openai_cfg: Optional[OpenAISettings] = None,
        suggestion_cfg: Optional[SuggestionSettings] = None,
        *,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._openai_cfg = openai_cfg or settings.openai
        self._cfg = suggestion_cfg or settings.suggestions
        if client is None and self._openai_cfg.api_key:
            self._client: Optional[AsyncOpenAI] = AsyncOpenAI(
                api_key=self._openai_cfg.api_key,
                base_url=self._openai_cfg.base_url,
                organization=self._openai_cfg.organization,
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()

    async def _complete(self, prompt: str) -> str:
        cfg = self._cfg
        params: Dict[str, Any] = {
            "model": cfg.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
            "timeout": cfg.timeout,
        }

        attempt = 0
        last_error: Exception | None = None
        total_attempts = cfg.retry_limit + 1
        while attempt < total_attempts:
            attempt += 1
            try:
                resp = await self._client.chat.completions.create(**params)
                for choice in getattr(resp, "choices", []):
                    message = getattr(choice, "message", None)
                    content = getattr(message, "content", None) if message else None
                    if isinstance(content, str) and content.strip():
                        logger.info(
                            "suggestions.completion.done",
                            extra={"model": cfg.model, "attempt": attempt},
                        )
                        return content
                logger.warning("suggestions.completion.empty", extra={"model": cfg.model, "attempt": attempt})
                raise SuggestionError("Empty response from the model")
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "suggestions.completion.error",
                    extra={"attempt": attempt, "model": cfg.model, "error": repr(exc)},
                )
                if attempt >= total_attempts:
                    break
                await asyncio.sleep(cfg.retry_backoff_seconds * attempt)

        raise SuggestionError("Suggestion generation failed after retries") from last_error

    async def generate(
        self,
        memories: Sequence[Memory],
        profile: Optional[PartnerProfile] = None,
        location: Optional[str] = None,
    ) -> SuggestionResult:
        if len(memories) < self._cfg.min_memories:
            raise ValidationError(
                f"{len(memories)} memories, need at least {self._cfg.min_memories}",
                user_message=(
                    f"Insufficient memories for AI analysis. You have {len(memories)} memories, "
                    f"but need at least {self._cfg.min_memories} to generate personalized suggestions."
                ),
            )
        if self._client is None:
            raise SuggestionError("OpenAI API key not configured")

        analysis = analyze_memories(memories)
        patterns = analyze_memory_patterns(memories)
        text = await self._complete(build_prompt(analysis, profile, location, patterns))
        items = parse_suggestions(text)

        suggestions: List[PlanSuggestion] = []
        for item in items:
            try:
                suggestion = PlanSuggestion.model_validate(item)
            except PydanticValidationError:
                logger.warning("suggestions.item.invalid", extra={"title": item.get("title")})
                continue
            if suggestion.confidence >= self._cfg.min_confidence:
                suggestions.append(suggestion)

        if not suggestions:
            raise SuggestionError(
                "No high-confidence suggestions generated. Please add more diverse memories."
            )
        logger.info("suggestions.generated", extra={"count": len(suggestions), "received": len(items)})
        return SuggestionResult(
            suggestions=suggestions,
            analysis=analysis,
            patterns=patterns,
        )


__all__ = [
    "SuggestionService",
    "SuggestionResult",
    "MemoryPatterns",
    "analyze_memories",
    "analyze_memory_patterns",
    "build_prompt",
    "parse_suggestions",
]

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from little_things.errors import SuggestionError, ValidationError
from little_things.models import Memory, PartnerProfile
from little_things.settings import OpenAISettings, SuggestionSettings
from little_things.suggestions import (
    SuggestionService,
    analyze_memories,
    analyze_memory_patterns,
    build_prompt,
    parse_suggestions,
)


def _settings(**overrides) -> SuggestionSettings:
    values = dict(
        model="gpt-4o-mini",
        temperature=0.8,
        max_tokens=2000,
        timeout=5.0,
        retry_limit=1,
        retry_backoff_seconds=0.0,
        min_memories=7,
        min_confidence=70,
    )
    values.update(overrides)
    return SuggestionSettings(**values)


def _memory(i: int, **overrides) -> Memory:
    values = dict(
        id=str(i),
        title=f"Memory {i}",
        description="",
        category="food",
        rating=3,
        date="2024-03-10T12:00:00+00:00",
        created_at="2024-03-10T12:00:00+00:00",
    )
    values.update(overrides)
    return Memory(**values)


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(*responses):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=list(responses))
    return client


def _service(client, **overrides) -> SuggestionService:
    return SuggestionService(
        OpenAISettings(api_key=None, organization=None, base_url=None),
        _settings(**overrides),
        client=client,
    )


SUGGESTIONS = [
    {"title": "Ramen crawl", "description": "Three shops", "confidence": 90, "difficulty": "Easy", "tags": ["food"]},
    {"title": "Opera night", "description": "Dress up", "confidence": 55, "difficulty": "Hard"},
]


def test_analyze_memories_collects_patterns():
    memories = [
        _memory(1, title="We laughed so much", rating=5, category="fun"),
        _memory(2, description="A romantic and special dinner", rating=4),
        _memory(3, date="2024-07-01T00:00:00+00:00", rating=3),
    ]

    analysis = analyze_memories(memories)

    assert analysis.emotional_keywords == ["fun", "romance"]
    assert analysis.activity_patterns == {"fun": 1, "food": 2}
    assert analysis.temporal_patterns == {"Mar": 2, "Jul": 1}
    assert [m["title"] for m in analysis.high_value_memories] == ["We laughed so much", "Memory 2"]
    assert analysis.total_memories == 3
    assert analysis.average_rating == pytest.approx(4.0)


def test_analyze_memories_handles_empty_list():
    analysis = analyze_memories([])
    assert analysis.total_memories == 0
    assert analysis.average_rating == 0.0


def test_analyze_memory_patterns():
    now = datetime(2024, 3, 12, tzinfo=timezone.utc)
    memories = [
        _memory(1, description="She loves spicy noodles. Also tea", category="food"),
        _memory(2, description="He enjoys long walks!", category="outdoors"),
        _memory(3, category="food", created_at="2024-01-01T00:00:00+00:00"),
    ]

    patterns = analyze_memory_patterns(memories, now=now)

    assert patterns.top_categories == ["food", "outdoors"]
    assert patterns.preferences == ["spicy noodles", "long walks"]
    assert patterns.recent_trends == ["food", "outdoors"]


def test_build_prompt_mentions_profile_and_location():
    analysis = analyze_memories([_memory(1, rating=5)])
    prompt = build_prompt(analysis, PartnerProfile(name="Sam", love_languages=["gifts"]), "Lisbon, Lisbon")

    assert "Name: Sam" in prompt
    assert "gifts" in prompt
    assert "USER LOCATION: Lisbon, Lisbon" in prompt


def test_parse_suggestions_falls_back_to_embedded_array():
    text = "Here you go:\n" + json.dumps(SUGGESTIONS) + "\nEnjoy!"
    assert [s["title"] for s in parse_suggestions(text)] == ["Ramen crawl", "Opera night"]


@pytest.mark.parametrize("text", ["no json here", "[]", '{"title": "x"}'])
def test_parse_suggestions_rejects_bad_payloads(text):
    with pytest.raises(SuggestionError):
        parse_suggestions(text)


@pytest.mark.asyncio
async def test_generate_requires_seven_memories():
    client = _client()
    service = _service(client)

    with pytest.raises(ValidationError) as excinfo:
        await service.generate([_memory(i) for i in range(6)])

    assert "at least 7" in excinfo.value.user_message
    client.chat.completions.create.assert_not_called()


@pytest.mark.asyncio
async def test_generate_filters_low_confidence():
    client = _client(_completion(json.dumps(SUGGESTIONS)))
    service = _service(client)

    result = await service.generate([_memory(i) for i in range(7)], PartnerProfile(name="Sam"))

    assert [s.title for s in result.suggestions] == ["Ramen crawl"]
    assert result.analysis.total_memories == 7
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.8
    assert kwargs["max_tokens"] == 2000


@pytest.mark.asyncio
async def test_generate_retries_after_api_error():
    client = _client(RuntimeError("rate limited"), _completion(json.dumps(SUGGESTIONS[:1])))
    service = _service(client)

    result = await service.generate([_memory(i) for i in range(7)])

    assert len(result.suggestions) == 1
    assert client.chat.completions.create.await_count == 2


@pytest.mark.asyncio
async def test_generate_fails_after_retries_exhausted():
    client = _client(RuntimeError("down"), RuntimeError("still down"))
    service = _service(client)

    with pytest.raises(SuggestionError):
        await service.generate([_memory(i) for i in range(7)])


@pytest.mark.asyncio
async def test_generate_fails_when_nothing_is_confident_enough():
    client = _client(_completion(json.dumps(SUGGESTIONS[1:])))
    service = _service(client)

    with pytest.raises(SuggestionError) as excinfo:
        await service.generate([_memory(i) for i in range(7)])

    assert "high-confidence" in excinfo.value.message


@pytest.mark.asyncio
async def test_generate_without_api_key_is_suggestion_error():
    service = SuggestionService(OpenAISettings(api_key=None, organization=None, base_url=None), _settings())

    assert not service.configured
    with pytest.raises(SuggestionError):
        await service.generate([_memory(i) for i in range(7)])


@pytest.mark.asyncio
async def test_generate_feeds_memory_patterns_into_prompt():
    client = _client(_completion(json.dumps(SUGGESTIONS[:1])))
    service = _service(client)
    memories = [_memory(i) for i in range(6)] + [_memory(6, description="She loves jazz bars", category="music")]

    result = await service.generate(memories)

    assert result.patterns.top_categories == ["food", "music"]
    assert result.patterns.preferences == ["jazz bars"]
    prompt = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
    assert "Top categories: food, music" in prompt
    assert "Stated preferences: jazz bars" in prompt

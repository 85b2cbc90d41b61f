"""Tests for player-utterance sentiment classification."""

import pytest

from npcmind.errors import TransportError
from npcmind.sentiment import (
    SentimentClassifier,
    heuristic_sentiment,
    parse_sentiment_reply,
    strip_code_fences,
)
from npcmind.errors import ProtocolError


def chat_reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.mark.parametrize(
    "text, label",
    [
        ("I hate you", "hostile"),
        ("Shut up and go away", "hostile"),
        ("Hello friend, thanks for the help!", "friendly"),
        ("Where is the market?", "neutral"),
        ("This is the way", "neutral"),
    ],
)
def test_heuristic_labels(text, label):
    result = heuristic_sentiment(text)
    assert result.label == label
    assert result.source == "heuristic"


def test_heuristic_neutral_has_low_confidence():
    assert heuristic_sentiment("The sky is grey").confidence < heuristic_sentiment("you idiot").confidence


def test_hostile_terms_win_over_friendly_terms():
    assert heuristic_sentiment("hello, I will hurt you").label == "hostile"


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"label": "neutral"}\n```') == '{"label": "neutral"}'
    assert strip_code_fences('{"label": "neutral"}') == '{"label": "neutral"}'


def test_parse_reply_normalizes_label_case():
    result = parse_sentiment_reply(chat_reply('{"label": "Threatening", "confidence": 0.9, "reasoning": "threat"}'))
    assert result.label == "threatening"
    assert result.source == "service"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"choices": []},
        chat_reply(""),
        chat_reply("I think it is friendly"),
        chat_reply('["friendly"]'),
        chat_reply('{"label": "sarcastic", "confidence": 0.5}'),
        chat_reply('{"label": "friendly", "confidence": 7}'),
    ],
)
def test_parse_reply_rejects_malformed_bodies(body):
    with pytest.raises(ProtocolError):
        parse_sentiment_reply(body)


@pytest.mark.asyncio
async def test_classify_without_credentials_uses_heuristics(monkeypatch):
    async def fail_post(*args, **kwargs):  # pragma: no cover - must not be called
        raise AssertionError("network must not be used without a key")

    monkeypatch.setattr("npcmind.sentiment.post_json", fail_post)
    classifier = SentimentClassifier(api_key="")

    result = await classifier.classify("you stupid rock thrower")

    assert result.label == "hostile"


@pytest.mark.asyncio
async def test_classify_calls_chat_completions(monkeypatch):
    captured = {}

    async def fake_post(url, payload, *, headers=None, timeout=30.0):
        captured.update(url=url, payload=payload, headers=headers)
        return chat_reply('```json\n{"label": "friendly", "confidence": 0.92, "reasoning": "greeting"}\n```')

    monkeypatch.setattr("npcmind.sentiment.post_json", fake_post)
    classifier = SentimentClassifier(
        base_url="https://sentiment.example/v1/", model="tiny", api_key="secret"
    )

    result = await classifier.classify("Good morning!")

    assert result.label == "friendly"
    assert result.confidence == pytest.approx(0.92)
    assert result.source == "service"
    assert captured["url"] == "https://sentiment.example/v1/chat/completions"
    assert captured["headers"] == {"Authorization": "Bearer secret"}
    payload = captured["payload"]
    assert payload["model"] == "tiny"
    assert payload["messages"][0]["role"] == "user"
    assert "Good morning!" in payload["messages"][0]["content"]
    assert set(payload) == {"model", "messages", "temperature", "max_tokens"}


@pytest.mark.asyncio
async def test_unparseable_reply_falls_back_to_heuristics(monkeypatch):
    async def fake_post(url, payload, *, headers=None, timeout=30.0):
        return chat_reply("Definitely hostile!!!")

    monkeypatch.setattr("npcmind.sentiment.post_json", fake_post)
    classifier = SentimentClassifier(api_key="secret")

    result = await classifier.classify("I will destroy you")

    assert result.label == "hostile"
    assert result.source == "heuristic"


@pytest.mark.asyncio
async def test_transport_failure_falls_back_to_heuristics(monkeypatch):
    async def fake_post(url, payload, *, headers=None, timeout=30.0):
        raise TransportError("boom", status=503, retryable=True)

    monkeypatch.setattr("npcmind.sentiment.post_json", fake_post)
    classifier = SentimentClassifier(api_key="secret")

    result = await classifier.classify("thanks a lot")

    assert result.label == "friendly"


@pytest.mark.asyncio
async def test_unexpected_failure_degrades_to_neutral(monkeypatch):
    async def fake_post(url, payload, *, headers=None, timeout=30.0):
        raise RuntimeError("unexpected")

    monkeypatch.setattr("npcmind.sentiment.post_json", fake_post)
    classifier = SentimentClassifier(api_key="secret")

    result = await classifier.classify("I hate you")

    assert result.label == "neutral"
    assert result.confidence == 0.0

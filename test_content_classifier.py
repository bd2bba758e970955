"""
Content classifier: payload construction, claim validation, batch-level
failures, translation fallback.

No network: a scripted ClassifierClient and Translator stand in for the LLM
and the translate endpoint.

Run: pytest test_content_classifier.py -v
"""

import asyncio
import json

from trustcheck.agents.claim_validator import validate_claim
from trustcheck.agents.content_classifier import (
    SYSTEM_PROMPT, ClassificationBatchError, ContentClassifier,
)
from trustcheck.config import Settings
from trustcheck.schemas import (
    CandidateProfile, ClaimVerdict, EntityKind, FlaggedProfileLLM, FlaggedProfilesLLM, FlagSource,
)
from trustcheck.tools.llm_service import LLMService

SETTINGS = Settings(_env_file=None, mock_mode=True)


class ScriptedClassifier:
    """Returns a fixed response and records what it was sent."""

    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response if response is not None else FlaggedProfilesLLM(users=[])
        self.error = error
        self.delay = delay
        self.calls = []

    async def classify(self, schema, system_prompt, payload):
        self.calls.append((schema, system_prompt, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


class EchoTranslator:
    """Translator returning a fixed mapping, or the input unchanged."""

    def __init__(self, mapping=None, fail_on=(), delay=0.0):
        self.mapping = mapping or {}
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = []

    async def translate(self, text, source="auto", target="en"):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if text in self.fail_on:
            raise ConnectionError("translate endpoint down")
        return self.mapping.get(text, text)


def claim(name, content, reason="Inappropriate content", confidence=0.7):
    return FlaggedProfileLLM(name=name, reason=reason, flaggedContent=content, confidence=confidence)


def profiles():
    return [
        CandidateProfile(id=1, name="alpha", display_name="Alpha", description="dm me for free stuff"),
        CandidateProfile(id=2, name="bravo", description="i like trains"),
        CandidateProfile(id=3, name="Charlie", description="builder and scripter"),
    ]


# ════════════════════════════════════════════════════════════════════
# Claim validation (pure function)
# ════════════════════════════════════════════════════════════════════

def test_validation_three_of_four_words():
    result = validate_claim(["free robux", "dm me"], "alpha", "dm me for free stuff", 0.5)
    assert result.verdict == ClaimVerdict.ACCEPT
    assert result.total_words == 4 and result.matched_words == 3
    assert result.match_ratio == 0.75
    assert result.unmatched_words == ["robux"]


def test_validation_three_of_four_fails_strict_threshold():
    result = validate_claim(["free robux", "dm me"], "alpha", "dm me for free stuff", 0.8)
    assert result.verdict == ClaimVerdict.REJECT


def test_validation_zero_overlap_always_rejected():
    for threshold in (0.0, 0.5, 0.8, 1.0):
        result = validate_claim(["xyzzy plugh"], "alpha", "dm me for free stuff", threshold)
        # ratio 0 only passes a 0.0 threshold; the pipeline never configures that
        if threshold > 0:
            assert result.verdict == ClaimVerdict.REJECT
        assert result.match_ratio == 0.0


def test_validation_empty_claim_rejected():
    assert validate_claim([], "alpha", "anything", 0.5).verdict == ClaimVerdict.REJECT
    assert validate_claim(["", "   "], "alpha", "anything", 0.0).verdict == ClaimVerdict.REJECT


def test_validation_is_idempotent():
    args = (["Frée  STUFF", "dm"], "alpha", "dm me for free stuff", 0.5)
    first = validate_claim(*args)
    for _ in range(5):
        again = validate_claim(*args)
        assert again == first


def test_validation_matches_name_and_normalizes():
    # Full-width and accented forms match the plain text; name counts too
    result = validate_claim(["Ｆｒｅｅ", "ALPHA"], "alpha", "frée stuff", 0.8)
    assert result.accepted
    assert result.matched_words == 2


# ════════════════════════════════════════════════════════════════════
# Classifier: happy path
# ════════════════════════════════════════════════════════════════════

def test_classifier_accepts_substantiated_claim_with_translation():
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("alpha", ["free robux", "dm me"])]))
    classifier = ContentClassifier(client, EchoTranslator(), SETTINGS)

    result = asyncio.run(classifier.classify(profiles()))

    assert [r.id for r in result.flagged] == [1]
    record = result.flagged[0]
    assert record.source == FlagSource.CONTENT
    assert record.flagged_content == ["free robux", "dm me"]
    assert record.description == "dm me for free stuff"
    assert record.display_name == "Alpha"
    assert result.failed_validation_ids == []


def test_classifier_untranslated_uses_strict_threshold():
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("alpha", ["free robux", "dm me"])]))
    result = asyncio.run(ContentClassifier(client, None, SETTINGS).classify(profiles()))

    assert result.flagged == []
    assert result.failed_validation_ids == [1]


def test_record_keeps_description_verbatim():
    description = "  dm me\n\nfor free stuff  "
    profile = CandidateProfile(id=1, name="  alpha ", description=description)
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("alpha", ["dm me", "free stuff"])]))

    result = asyncio.run(ContentClassifier(client, None, SETTINGS).classify([profile]))

    assert profile.name == "alpha"
    assert result.flagged[0].description == description


def test_same_id_user_and_group_classified_separately():
    batch = [
        CandidateProfile(id=9, name="innocent", description="i like trains"),
        CandidateProfile(id=9, kind=EntityKind.GROUP, name="spicyclub", description="spicy pics club"),
    ]
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("spicyclub", ["spicy pics"])]))

    result = asyncio.run(ContentClassifier(client, None, SETTINGS).classify(batch))

    assert '"innocent"' in client.calls[0][2]
    assert [(r.id, r.kind) for r in result.flagged] == [(9, EntityKind.GROUP)]


def test_classifier_payload_is_compact_and_withholds_ids():
    client = ScriptedClassifier()
    asyncio.run(ContentClassifier(client, None, SETTINGS).classify(profiles()))

    schema, system_prompt, payload = client.calls[0]
    assert schema is FlaggedProfilesLLM
    assert system_prompt == SYSTEM_PROMPT
    expected = [
        {"name": "alpha", "description": "dm me for free stuff"},
        {"name": "bravo", "description": "i like trains"},
        {"name": "Charlie", "description": "builder and scripter"},
    ]
    assert json.loads(payload) == expected
    assert payload == json.dumps(expected, separators=(",", ":"))
    assert '"id"' not in payload


def test_classifier_sends_translated_text_keeps_original_in_record():
    original = "robux gratis manda dm"
    translated = "free robux send dm"
    batch = [CandidateProfile(id=9, name="delta", description=original)]
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("delta", ["free robux"])]))
    classifier = ContentClassifier(client, EchoTranslator({original: translated}), SETTINGS)

    result = asyncio.run(classifier.classify(batch))

    assert json.loads(client.calls[0][2]) == [{"name": "delta", "description": translated}]
    assert result.flagged[0].description == original


def test_classifier_name_match_is_normalized():
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("CHARLIE", ["builder"])]))
    result = asyncio.run(ContentClassifier(client, None, SETTINGS).classify(profiles()))
    assert [r.id for r in result.flagged] == [3]


def test_classifier_zero_overlap_goes_to_failed_validation():
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("bravo", ["totally invented words"])]))
    result = asyncio.run(ContentClassifier(client, EchoTranslator(), SETTINGS).classify(profiles()))
    assert result.flagged == []
    assert result.failed_validation_ids == [2]


def test_classifier_discards_claims_outside_batch():
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[
        claim("ghost", ["dm me"]),
        claim("alpha", ["dm me", "free"]),
    ]))
    result = asyncio.run(ContentClassifier(client, EchoTranslator(), SETTINGS).classify(profiles()))
    assert result.anomalies == ["ghost"]
    assert [r.id for r in result.flagged] == [1]
    assert result.failed_validation_ids == []


def test_classifier_one_record_per_profile():
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[
        claim("alpha", ["dm me"], confidence=0.4),
        claim("alpha", ["free stuff"], confidence=0.9),
    ]))
    result = asyncio.run(ContentClassifier(client, EchoTranslator(), SETTINGS).classify(profiles()))
    assert len(result.flagged) == 1
    assert result.flagged[0].confidence == 0.4


def test_classifier_confidence_clamped():
    client = ScriptedClassifier({"users": [
        {"name": "alpha", "reason": "r", "flaggedContent": ["dm me"], "confidence": 3.5},
        {"name": "bravo", "reason": "r", "flaggedContent": ["trains"], "confidence": -1},
    ]})
    result = asyncio.run(ContentClassifier(client, EchoTranslator(), SETTINGS).classify(profiles()))
    by_id = {r.id: r.confidence for r in result.flagged}
    assert by_id == {1: 1.0, 2: 0.0}


def test_classifier_empty_batch_makes_no_call():
    client = ScriptedClassifier()
    result = asyncio.run(ContentClassifier(client, None, SETTINGS).classify([]))
    assert result.flagged == [] and client.calls == []


# ════════════════════════════════════════════════════════════════════
# Classifier: translation fallback
# ════════════════════════════════════════════════════════════════════

def test_translation_failure_falls_back_to_original():
    translator = EchoTranslator(fail_on={"i like trains"})
    client = ScriptedClassifier(FlaggedProfilesLLM(users=[claim("bravo", ["trains"])]))
    result = asyncio.run(ContentClassifier(client, translator, SETTINGS).classify(profiles()))

    sent = {p["name"]: p["description"] for p in json.loads(client.calls[0][2])}
    assert sent["bravo"] == "i like trains"
    assert [r.id for r in result.flagged] == [2]


def test_translation_timeout_falls_back_to_original():
    settings = Settings(_env_file=None, mock_mode=True, translation_timeout_seconds=0.01)
    translator = EchoTranslator(mapping={"i like trains": "something else"}, delay=0.5)
    client = ScriptedClassifier()
    asyncio.run(ContentClassifier(client, translator, settings).classify(profiles()))

    sent = {p["name"]: p["description"] for p in json.loads(client.calls[0][2])}
    assert sent["bravo"] == "i like trains"


def test_translation_disabled_by_setting():
    settings = Settings(_env_file=None, mock_mode=True, translation_enabled=False)
    translator = EchoTranslator()
    asyncio.run(ContentClassifier(ScriptedClassifier(), translator, settings).classify(profiles()))
    assert translator.calls == []


# ════════════════════════════════════════════════════════════════════
# Classifier: batch-level failures
# ════════════════════════════════════════════════════════════════════

def test_llm_error_raises_batch_error_with_ids():
    client = ScriptedClassifier(error=ConnectionError("provider down"))
    try:
        asyncio.run(ContentClassifier(client, None, SETTINGS).classify(profiles()))
        raise AssertionError("expected ClassificationBatchError")
    except ClassificationBatchError as e:
        assert e.profile_ids == [1, 2, 3]
        assert isinstance(e.__cause__, ConnectionError)
    assert len(client.calls) == 1


def test_llm_timeout_raises_batch_error():
    settings = Settings(_env_file=None, mock_mode=True, classifier_timeout_seconds=0.01)
    client = ScriptedClassifier(delay=0.5)
    try:
        asyncio.run(ContentClassifier(client, None, settings).classify(profiles()))
        raise AssertionError("expected ClassificationBatchError")
    except ClassificationBatchError as e:
        assert e.profile_ids == [1, 2, 3]
        assert isinstance(e.__cause__, asyncio.TimeoutError)


def test_schema_mismatch_raises_batch_error():
    client = ScriptedClassifier({"users": [{"name": "alpha"}]})
    try:
        asyncio.run(ContentClassifier(client, None, SETTINGS).classify(profiles()))
        raise AssertionError("expected ClassificationBatchError")
    except ClassificationBatchError as e:
        assert e.profile_ids == [1, 2, 3]


def test_unparseable_response_raises_batch_error():
    client = ScriptedClassifier("not json at all")
    try:
        asyncio.run(ContentClassifier(client, None, SETTINGS).classify(profiles()))
        raise AssertionError("expected ClassificationBatchError")
    except ClassificationBatchError:
        pass


# ════════════════════════════════════════════════════════════════════
# LLMService in mock mode
# ════════════════════════════════════════════════════════════════════

def test_llm_service_mock_returns_empty_schema():
    service = LLMService(settings=SETTINGS)
    output = asyncio.run(service.classify(FlaggedProfilesLLM, SYSTEM_PROMPT, "[]"))
    assert isinstance(output, FlaggedProfilesLLM)
    assert output.users == []


def test_pipeline_classifier_with_mock_service():
    classifier = ContentClassifier(LLMService(settings=SETTINGS), None, SETTINGS)
    result = asyncio.run(classifier.classify(profiles()))
    assert result.flagged == [] and result.failed_validation_ids == []


def test_agent_cache_separates_provider_configs():
    LLMService.clear_cache()
    openai_service = LLMService(settings=Settings(
        _env_file=None, openai_api_key="sk-test", openai_model="gpt-4o-mini", groq_api_key="",
    ))
    groq_service = LLMService(settings=Settings(
        _env_file=None, openai_api_key="", groq_api_key="gsk-test", groq_model="llama-3.3-70b-versatile",
    ))

    a = openai_service._get_or_create_agent(FlaggedProfilesLLM, SYSTEM_PROMPT)
    b = groq_service._get_or_create_agent(FlaggedProfilesLLM, SYSTEM_PROMPT)

    assert a is not b
    assert a.model.model_name == "gpt-4o-mini"
    assert b.model.model_name == "llama-3.3-70b-versatile"
    assert openai_service._get_or_create_agent(FlaggedProfilesLLM, SYSTEM_PROMPT) is a
    LLMService.clear_cache()

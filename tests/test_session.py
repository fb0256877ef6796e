"""
Tests for session.py — the two-stage analysis state machine.

Covers:
  - Happy path: IDLE → PROFILE_LOADING → INSIGHTS_LOADING → COMPLETE
  - Stage-1 failure: ERRORED, no profile, stage 2 never called
  - Stage-2 failure: ERRORED, profile and stage-1 sources kept
  - Unexpected exceptions in either stage still end in ERRORED
  - Source merging: union in first-seen order, no duplicates
  - Guards: empty input and a second start() while busy are no-ops
  - Media is encoded once and reused for both stages
  - reset() from every state, including mid-flight
  - set_language() / to_record()
"""
from __future__ import annotations

import pytest

from conftest import FakeProvider
from errors import AnalysisError, ConfigurationError, EncodingError
from models import AnalysisInput, AnalysisInsights, EncodedMedia, ProfileAnalysis
from session import AnalysisSession, SessionState

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def make_provider(choco_profile, choco_insights, profile_sources=None, insights_sources=None):
    insights = AnalysisInsights.from_dict(choco_insights.to_dict(), sources=insights_sources or [])
    return FakeProvider(
        profile_result=ProfileAnalysis(profile=choco_profile, sources=list(profile_sources or [])),
        insights_result=insights,
    )


class Recorder:
    """Session listener that remembers every state it was called with."""

    def __init__(self):
        self.states: list[SessionState] = []

    async def __call__(self, session: AnalysisSession) -> None:
        self.states.append(session.state)


# ── Happy path ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestHappyPath:
    async def test_choco_bar_end_to_end(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        rec = Recorder()
        session = AnalysisSession(provider, language="en", listener=rec)

        assert await session.start(AnalysisInput(text="Choco Bar")) is True

        assert rec.states == [
            SessionState.PROFILE_LOADING,
            SessionState.INSIGHTS_LOADING,
            SessionState.COMPLETE,
        ]
        assert session.state is SessionState.COMPLETE
        assert session.profile.name == "Choco Bar"
        assert len(session.insights.competitors) == 2
        assert session.error is None
        assert not session.is_busy

    async def test_stage_two_receives_stage_one_profile(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        session = AnalysisSession(provider, language="ko")
        await session.start(AnalysisInput(text="Choco Bar"))

        (_, text, _, profile, language), = provider.stage_calls("insights")
        assert text == "Choco Bar"
        assert profile == choco_profile
        assert language == "ko"

    async def test_profile_visible_while_insights_loading(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        seen = {}

        async def listener(session):
            if session.state is SessionState.INSIGHTS_LOADING:
                seen["profile"] = session.profile
                seen["insights"] = session.insights
                seen["busy"] = session.is_busy

        session = AnalysisSession(provider, listener=listener)
        await session.start(AnalysisInput(text="Choco Bar"))

        assert seen == {"profile": choco_profile, "insights": None, "busy": True}

    async def test_listener_failure_does_not_break_run(self, choco_profile, choco_insights):
        async def broken(session):
            raise RuntimeError("telegram down")

        session = AnalysisSession(make_provider(choco_profile, choco_insights), listener=broken)
        await session.start(AnalysisInput(text="Choco Bar"))
        assert session.state is SessionState.COMPLETE


# ── Failures ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestFailures:
    async def test_stage_one_failure_never_calls_stage_two(self, choco_insights):
        provider = FakeProvider(profile_result=AnalysisError("profile", "boom"),
                                insights_result=choco_insights)
        session = AnalysisSession(provider)

        await session.start(AnalysisInput(text="Choco Bar"))

        assert session.state is SessionState.ERRORED
        assert session.error_stage == "profile"
        assert session.error.startswith("Failed to analyze profile.")
        assert session.profile is None
        assert session.insights is None
        assert provider.stage_calls("insights") == []

    async def test_stage_two_failure_keeps_profile_and_sources(self, choco_profile):
        provider = FakeProvider(
            profile_result=ProfileAnalysis(profile=choco_profile, sources=["https://a"]),
            insights_result=AnalysisError("insights", "bad json"),
        )
        session = AnalysisSession(provider)

        await session.start(AnalysisInput(text="Choco Bar"))

        assert session.state is SessionState.ERRORED
        assert session.error_stage == "insights"
        assert session.error.startswith("Failed to generate insights.")
        assert session.profile == choco_profile
        assert session.insights is None
        assert session.sources == ["https://a"]

    async def test_configuration_error_reported_as_configuration(self):
        provider = FakeProvider(profile_result=ConfigurationError("GOOGLE_API_KEY is missing."))
        session = AnalysisSession(provider)

        await session.start(AnalysisInput(text="Choco Bar"))

        assert session.state is SessionState.ERRORED
        assert session.error_stage == "configuration"
        assert "GOOGLE_API_KEY" in session.error

    async def test_unreadable_media_fails_before_any_call(self, tmp_path):
        provider = FakeProvider()
        session = AnalysisSession(provider)

        await session.start(AnalysisInput(media=tmp_path / "missing.png", kind="photo"))

        assert session.state is SessionState.ERRORED
        assert session.error_stage == "encoding"
        assert provider.calls == []

    async def test_encoding_error_instance_maps_to_encoding(self):
        provider = FakeProvider(profile_result=EncodingError("nope"))
        session = AnalysisSession(provider)
        await session.start(AnalysisInput(text="x"))
        assert session.error_stage == "encoding"

    async def test_unexpected_stage_two_error_still_ends_errored(self, choco_profile):
        provider = FakeProvider(
            profile_result=ProfileAnalysis(profile=choco_profile),
            insights_result=OverflowError("cannot convert float infinity to integer"),
        )
        session = AnalysisSession(provider)

        assert await session.start(AnalysisInput(text="Choco Bar")) is True

        assert session.state is SessionState.ERRORED
        assert session.error_stage == "insights"
        assert session.error.startswith("Failed to generate insights.")
        assert session.profile == choco_profile
        assert not session.is_busy

    async def test_unexpected_stage_one_error_still_ends_errored(self):
        provider = FakeProvider(profile_result=KeyError("profile"))
        session = AnalysisSession(provider)

        await session.start(AnalysisInput(text="Choco Bar"))

        assert session.state is SessionState.ERRORED
        assert session.error_stage == "profile"
        assert not session.is_busy
        assert provider.stage_calls("insights") == []


# ── Sources ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSources:
    async def test_union_without_duplicates_in_first_seen_order(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights,
                                 profile_sources=["A", "B"], insights_sources=["B", "C"])
        session = AnalysisSession(provider)

        await session.start(AnalysisInput(text="Choco Bar"))

        assert session.sources == ["A", "B", "C"]

    async def test_no_grounding_is_not_an_error(self, choco_profile, choco_insights):
        session = AnalysisSession(make_provider(choco_profile, choco_insights))
        await session.start(AnalysisInput(text="Choco Bar"))
        assert session.state is SessionState.COMPLETE
        assert session.sources == []


# ── Guards ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestGuards:
    async def test_empty_input_is_noop(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        session = AnalysisSession(provider)

        assert await session.start(AnalysisInput(text="   ")) is False

        assert session.state is SessionState.IDLE
        assert provider.calls == []

    async def test_empty_input_keeps_previous_result(self, choco_profile, choco_insights):
        session = AnalysisSession(make_provider(choco_profile, choco_insights))
        await session.start(AnalysisInput(text="Choco Bar"))

        await session.start(AnalysisInput(text=""))

        assert session.state is SessionState.COMPLETE
        assert session.profile == choco_profile

    async def test_second_start_while_busy_is_noop(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        session = AnalysisSession(provider)
        results = []

        async def reenter():
            results.append(await session.start(AnalysisInput(text="Other")))

        provider.on_profile = reenter
        await session.start(AnalysisInput(text="Choco Bar"))

        assert results == [False]
        assert len(provider.stage_calls("profile")) == 1
        assert session.input.text == "Choco Bar"
        assert session.state is SessionState.COMPLETE

    async def test_media_only_input_is_accepted(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        session = AnalysisSession(provider)

        assert await session.start(AnalysisInput(media=PNG, kind="photo")) is True
        assert session.state is SessionState.COMPLETE


# ── Media ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestMedia:
    async def test_media_encoded_once_and_sent_to_both_stages(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        session = AnalysisSession(provider)

        await session.start(AnalysisInput(text="label", media=PNG, kind="photo"))

        profile_media  = provider.stage_calls("profile")[0][2]
        insights_media = provider.stage_calls("insights")[0][2]
        assert isinstance(profile_media, EncodedMedia)
        assert profile_media.content_type == "image/png"
        assert profile_media.to_bytes() == PNG
        assert insights_media is profile_media

    async def test_text_only_sends_no_media(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        await AnalysisSession(provider).start(AnalysisInput(text="Choco Bar"))
        assert provider.stage_calls("profile")[0][2] is None


# ── Reset ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestReset:
    async def test_reset_after_complete(self, choco_profile, choco_insights):
        session = AnalysisSession(make_provider(choco_profile, choco_insights, profile_sources=["A"]),
                                  language="en")
        await session.start(AnalysisInput(text="Choco Bar"))

        session.reset()

        assert session.state is SessionState.IDLE
        assert session.profile is None
        assert session.insights is None
        assert session.sources == []
        assert session.error is None
        assert session.language == "en"

    async def test_reset_after_error(self):
        session = AnalysisSession(FakeProvider(profile_result=AnalysisError("profile")))
        await session.start(AnalysisInput(text="x"))
        session.reset()
        assert session.state is SessionState.IDLE
        assert session.error is None
        assert session.error_stage is None

    async def test_reset_mid_flight_abandons_run(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights)
        session = AnalysisSession(provider)

        async def reset_now():
            session.reset()

        provider.on_insights = reset_now
        await session.start(AnalysisInput(text="Choco Bar"))

        assert session.state is SessionState.IDLE
        assert session.profile is None
        assert session.insights is None

    async def test_new_run_after_reset_starts_clean(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights, profile_sources=["A"])
        session = AnalysisSession(provider)
        await session.start(AnalysisInput(text="Choco Bar"))
        session.reset()

        await session.start(AnalysisInput(text="Choco Bar"))

        assert session.sources == ["A"]
        assert session.state is SessionState.COMPLETE


# ── Language / export ─────────────────────────────────────────────────────────

class TestLanguage:
    def test_default_language_from_config(self, monkeypatch):
        import config
        monkeypatch.setattr(config, "DEFAULT_LANGUAGE", "en")
        assert AnalysisSession(FakeProvider()).language == "en"

    def test_set_language(self):
        session = AnalysisSession(FakeProvider())
        session.set_language("ko")
        assert session.language == "ko"

    def test_unknown_language_rejected(self):
        session = AnalysisSession(FakeProvider(), language="vi")
        with pytest.raises(ValueError):
            session.set_language("fr")
        assert session.language == "vi"


@pytest.mark.asyncio
class TestToRecord:
    async def test_empty_without_profile(self):
        assert AnalysisSession(FakeProvider()).to_record() == {}

    async def test_merged_record(self, choco_profile, choco_insights):
        provider = make_provider(choco_profile, choco_insights,
                                 profile_sources=["A"], insights_sources=["B"])
        session = AnalysisSession(provider)
        await session.start(AnalysisInput(text="Choco Bar"))

        record = session.to_record()

        assert record["profile"]["name"] == "Choco Bar"
        assert record["swot"]["strengths"] == ["Brand recognition"]
        assert record["sources"] == ["A", "B"]

    async def test_record_after_stage_two_failure_has_profile_only(self, choco_profile):
        provider = FakeProvider(profile_result=ProfileAnalysis(profile=choco_profile),
                                insights_result=AnalysisError("insights"))
        session = AnalysisSession(provider)
        await session.start(AnalysisInput(text="Choco Bar"))

        assert set(session.to_record()) == {"profile", "sources"}


# ── End to end ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestEndToEnd:
    async def test_choco_bar_english_one_competitor(self):
        from comparison import build_comparison
        from models import ProductProfile

        provider = FakeProvider(
            profile_result=ProfileAnalysis(profile=ProductProfile.from_dict({"name": "Choco Bar"})),
            insights_result=AnalysisInsights.from_dict({
                "competitors": [{"name": "Rival", "price": "$2.00"}],
                "radarChart": [{"axis": a, "score": s} for a, s in
                               (("Sweetness", 8), ("Sourness", 2), ("Aroma", 6),
                                ("Texture", 7), ("Appearance", 9))],
            }),
        )
        rec = Recorder()
        session = AnalysisSession(provider, language="en", listener=rec)

        await session.start(AnalysisInput(text="Choco Bar 50g"))

        assert SessionState.INSIGHTS_LOADING in rec.states
        assert session.state is SessionState.COMPLETE
        assert session.profile.name == "Choco Bar"
        assert provider.stage_calls("profile")[0][3] == "en"
        assert len(session.insights.competitors) == 1
        assert len(session.insights.radar_chart) == 5

        table = build_comparison(session.profile, session.insights.competitors)
        rival_price = table.rows[0].cells[1]
        assert rival_price.value == 2.0
        assert rival_price.width == 100.0

    async def test_export_round_trip_matches_session(self, choco_profile, choco_insights):
        import exporter

        provider = make_provider(choco_profile, choco_insights,
                                 profile_sources=["A", "B"], insights_sources=["B", "C"])
        session = AnalysisSession(provider)
        await session.start(AnalysisInput(text="Choco Bar"))

        record = session.to_record()
        restored = exporter.from_json_text(exporter.to_json_text(record))

        assert restored == record
        assert AnalysisInsights.from_dict(restored).to_dict() == session.insights.to_dict()

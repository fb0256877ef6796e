"""
session.py — the two-stage analysis state machine.

  IDLE ─start()→ PROFILE_LOADING ─ok→ INSIGHTS_LOADING ─ok→ COMPLETE
                       │                    │
                       └──────fail──────────┴──→ ERRORED

The session exclusively owns its fields. Presentation code reads them and
calls start() / reset() / set_language(); it never assigns to them.

Stage 2 starts automatically as soon as stage 1 succeeds and can't be
cancelled. A stage-2 failure keeps the profile and its sources visible.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

import config
from errors import AnalysisError, ConfigurationError, EncodingError, SweetTechError
from media_encoder import encode_media
from models import AnalysisInput, AnalysisInsights, ProductProfile
from prompts import LANGUAGES
from providers.base import AnalysisProvider

logger = logging.getLogger(__name__)

Listener = Callable[["AnalysisSession"], Awaitable[None]]


class SessionState(str, Enum):
    IDLE             = "idle"
    PROFILE_LOADING  = "profile_loading"
    INSIGHTS_LOADING = "insights_loading"
    COMPLETE         = "complete"
    ERRORED          = "errored"


class AnalysisSession:

    def __init__(
        self,
        provider: AnalysisProvider,
        language: Optional[str] = None,
        listener: Optional[Listener] = None,
    ) -> None:
        self._provider = provider
        self.language: str = language or config.DEFAULT_LANGUAGE
        # Called after every state transition; purely for rendering progress
        self.listener: Optional[Listener] = listener
        self._clear()

    def _clear(self) -> None:
        # Bumped on every clear so a run abandoned by reset() can tell it is stale
        self._run_id: int = getattr(self, "_run_id", 0) + 1
        self.state: SessionState               = SessionState.IDLE
        self.input: Optional[AnalysisInput]    = None
        self.profile: Optional[ProductProfile] = None
        self.insights: Optional[AnalysisInsights] = None
        self.error: Optional[str]       = None
        self.error_stage: Optional[str] = None
        self.sources: list[str]         = []

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def is_profile_loading(self) -> bool:
        return self.state is SessionState.PROFILE_LOADING

    @property
    def is_insights_loading(self) -> bool:
        return self.state is SessionState.INSIGHTS_LOADING

    @property
    def is_busy(self) -> bool:
        return self.is_profile_loading or self.is_insights_loading

    # ── Transitions ───────────────────────────────────────────────────────────

    async def _transition(self, state: SessionState) -> None:
        self.state = state
        logger.debug("Session → %s", state.value)
        if self.listener is None:
            return
        try:
            await self.listener(self)
        except Exception as exc:
            logger.warning("Session listener failed on %s: %s", state.value, exc)

    def _merge_sources(self, sources: list[str]) -> None:
        for uri in sources:
            if uri not in self.sources:
                self.sources.append(uri)

    async def _fail(self, exc: SweetTechError, stage: str) -> None:
        self.error = str(exc)
        if isinstance(exc, ConfigurationError):
            stage = "configuration"
        elif isinstance(exc, EncodingError):
            stage = "encoding"
        self.error_stage = getattr(exc, "stage", stage)
        logger.warning("Analysis %s stage failed: %s", self.error_stage, exc)
        await self._transition(SessionState.ERRORED)

    async def start(self, inp: AnalysisInput) -> bool:
        """
        Run both stages for `inp`. Returns False (and does nothing) when the
        input is empty or a previous run is still in flight.
        """
        if inp.is_empty:
            return False
        if self.is_busy:
            logger.info("Ignoring start(): analysis already running")
            return False

        self._clear()
        self.input = inp
        run_id = self._run_id
        await self._transition(SessionState.PROFILE_LOADING)

        media = None
        try:
            if inp.media is not None:
                media = encode_media(inp.media, content_type=inp.media_type, filename=inp.filename)
            stage1 = await self._provider.analyze_profile(inp.text, media, self.language)
        except SweetTechError as exc:
            if run_id == self._run_id:
                await self._fail(exc, "profile")
            return True
        except Exception as exc:
            logger.exception("Unexpected profile stage error")
            if run_id == self._run_id:
                await self._fail(AnalysisError("profile", str(exc)), "profile")
            return True

        if run_id != self._run_id:
            return True
        self.profile = stage1.profile
        self._merge_sources(stage1.sources)
        await self._transition(SessionState.INSIGHTS_LOADING)

        try:
            insights = await self._provider.analyze_insights(inp.text, media, stage1.profile, self.language)
        except SweetTechError as exc:
            if run_id == self._run_id:
                await self._fail(exc, "insights")
            return True
        except Exception as exc:
            logger.exception("Unexpected insights stage error")
            if run_id == self._run_id:
                await self._fail(AnalysisError("insights", str(exc)), "insights")
            return True

        if run_id != self._run_id:
            return True
        self.insights = insights
        self._merge_sources(insights.sources)
        await self._transition(SessionState.COMPLETE)
        return True

    def reset(self) -> None:
        """Back to IDLE from any state. The language selection is kept."""
        self._clear()

    def set_language(self, code: str) -> None:
        if code not in LANGUAGES:
            raise ValueError(f"Unsupported language '{code}'. Choose one of: {', '.join(LANGUAGES)}")
        self.language = code

    # ── Export view ───────────────────────────────────────────────────────────

    def to_record(self) -> dict:
        """Merged profile + insights + sources, shaped like the model's JSON."""
        if self.profile is None:
            return {}
        record: dict = {"profile": self.profile.to_dict()}
        if self.insights is not None:
            record.update(self.insights.to_dict())
        record["sources"] = list(self.sources)
        return record

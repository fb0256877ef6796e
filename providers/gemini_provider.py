"""
Google Gemini analysis provider — uses the google-genai SDK.

Both stages send the prompt text plus (optionally) the uploaded media as an
inline part, with Google Search grounding turned on so the model can look up
real prices, competitors and reviews. Cited URLs come back in the grounding
metadata and are returned alongside the parsed result.

No retries here: a failed stage surfaces immediately and the user resends.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Optional

from google import genai
from google.genai import types as genai_types

import config
from errors import AnalysisError
from models import AnalysisInsights, EncodedMedia, ProductProfile, ProfileAnalysis
from prompts import build_insights_prompt, build_profile_prompt
from providers.base import AnalysisProvider, extract_sources, parse_json_response

logger = logging.getLogger(__name__)


class GeminiAnalysisClient(AnalysisProvider):

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Any = None,
    ):
        self.name     = "google"
        self.model_id = model or config.GEMINI_MODEL
        self._api_key = api_key
        # Built lazily so a missing key is reported before any SDK/network use
        self._client  = client

    def _get_client(self) -> Any:
        if self._client is None:
            api_key = self._api_key or config.require_api_key()
            self._client = genai.Client(api_key=api_key)
        return self._client

    def _ensure_configured(self) -> None:
        if self._client is None and not self._api_key:
            config.require_api_key()

    @staticmethod
    def _contents(prompt: str, media: Optional[EncodedMedia]) -> list:
        contents: list = [prompt]
        if media is not None:
            contents.append(
                genai_types.Part.from_bytes(data=media.to_bytes(), mime_type=media.content_type)
            )
        return contents

    @staticmethod
    def _gen_config(temperature: float) -> genai_types.GenerateContentConfig:
        tools = (
            [genai_types.Tool(google_search=genai_types.GoogleSearch())]
            if config.SEARCH_GROUNDING else None
        )
        return genai_types.GenerateContentConfig(temperature=temperature, tools=tools)

    async def _generate(
        self,
        stage: str,
        prompt: str,
        media: Optional[EncodedMedia],
        temperature: float,
    ) -> tuple[Any, list[str]]:
        """Run one request and return (parsed JSON, cited sources)."""
        client = self._get_client()
        t0 = time.monotonic()
        try:
            response = await client.aio.models.generate_content(
                model=self.model_id,
                contents=self._contents(prompt, media),
                config=self._gen_config(temperature),
            )
        except Exception as exc:
            logger.error("[%s] %s request failed: %s", self.full_name, stage, exc)
            raise AnalysisError(stage, str(exc)) from exc

        latency_ms = int((time.monotonic() - t0) * 1000)
        usage = getattr(response, "usage_metadata", None)
        logger.info(
            "[%s] %s OK — latency=%dms tokens=%s/%s",
            self.full_name, stage, latency_ms,
            getattr(usage, "prompt_token_count", "?"),
            getattr(usage, "candidates_token_count", "?"),
        )

        raw = getattr(response, "text", None) or ""
        if not raw.strip():
            raise AnalysisError(stage, "Empty response from model.")
        try:
            data = parse_json_response(raw, stage)
        except ValueError as exc:
            raise AnalysisError(stage, str(exc)) from exc

        return data, extract_sources(response)

    async def analyze_profile(
        self,
        text: str,
        media: Optional[EncodedMedia],
        language: str,
    ) -> ProfileAnalysis:
        self._ensure_configured()
        prompt = build_profile_prompt(text, language)
        data, sources = await self._generate("profile", prompt, media, config.PROFILE_TEMPERATURE)

        profile = data.get("profile") if isinstance(data, dict) else None
        if not isinstance(profile, dict):
            logger.error("[%s] profile response missing 'profile' object", self.full_name)
            raise AnalysisError("profile", "Response has no 'profile' object.")

        try:
            parsed = ProductProfile.from_dict(profile)
        except Exception as exc:
            logger.error("[%s] profile response could not be parsed: %s", self.full_name, exc)
            raise AnalysisError("profile", str(exc)) from exc
        return ProfileAnalysis(profile=parsed, sources=sources)

    async def analyze_insights(
        self,
        text: str,
        media: Optional[EncodedMedia],
        profile: ProductProfile,
        language: str,
    ) -> AnalysisInsights:
        self._ensure_configured()
        prompt = build_insights_prompt(text, language, profile)
        data, sources = await self._generate("insights", prompt, media, config.INSIGHTS_TEMPERATURE)

        if not isinstance(data, dict):
            raise AnalysisError("insights", "Response is not a JSON object.")

        try:
            return AnalysisInsights.from_dict(data, sources=sources)
        except Exception as exc:
            logger.error("[%s] insights response could not be parsed: %s", self.full_name, exc)
            raise AnalysisError("insights", str(exc)) from exc

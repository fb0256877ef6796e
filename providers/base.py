"""
Shared helpers and base class for analysis providers.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from models import AnalysisInsights, EncodedMedia, ProductProfile, ProfileAnalysis

logger = logging.getLogger(__name__)


def parse_json_response(raw: str, stage: str) -> Any:
    """
    Parse JSON from a model response, handling markdown fences gracefully.
    Raises ValueError on parse failure.
    """
    text = (raw or "").strip()
    # Strip ```json ... ``` or ``` ... ``` fences if present
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if text.rstrip().endswith("```"):
        text = text.rstrip()[:-3]
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("[%s] Non-JSON response: %s", stage, (raw or "")[:300])
        raise ValueError(f"[{stage}] JSON parse error: {exc}") from exc


def _get(obj: Any, name: str) -> Any:
    """Attribute access that also works on plain dicts (REST-shaped responses)."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_sources(response: Any) -> list[str]:
    """
    Collect the web URIs cited in the first candidate's grounding metadata.
    De-duplicated in first-seen order. Never raises: anything missing or
    malformed just yields fewer (or no) sources.
    """
    try:
        candidates = _get(response, "candidates") or []
        if not candidates:
            return []
        metadata = _get(candidates[0], "grounding_metadata")
        chunks   = _get(metadata, "grounding_chunks") or []
        sources: list[str] = []
        for chunk in chunks:
            uri = _get(_get(chunk, "web"), "uri")
            if isinstance(uri, str) and uri and uri not in sources:
                sources.append(uri)
        return sources
    except Exception as exc:
        logger.debug("Ignoring malformed grounding metadata: %s", exc)
        return []


# ── Abstract base ──────────────────────────────────────────────────────────────

class AnalysisProvider(ABC):
    """Base class for the two-stage analysis backend."""

    name: str           # e.g. "google"
    model_id: str       # e.g. "gemini-3-pro-preview"

    @abstractmethod
    async def analyze_profile(
        self,
        text: str,
        media: Optional[EncodedMedia],
        language: str,
    ) -> ProfileAnalysis:
        """Stage 1. Raises ConfigurationError or AnalysisError("profile")."""
        ...

    @abstractmethod
    async def analyze_insights(
        self,
        text: str,
        media: Optional[EncodedMedia],
        profile: ProductProfile,
        language: str,
    ) -> AnalysisInsights:
        """Stage 2. Raises ConfigurationError or AnalysisError("insights")."""
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"

"""
Shared pytest fixtures.

Every test that touches the database or config gets a clean
temporary DATA_DIR via the `tmp_data_dir` fixture so tests
are fully isolated from each other and from the real bot_data.db.

`FakeProvider` stands in for the Gemini client: it records every call and
returns canned stage results (or raises canned errors).
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from models import (  # noqa: E402
    AnalysisInsights,
    EncodedMedia,
    ProductProfile,
    ProfileAnalysis,
)
from providers.base import AnalysisProvider  # noqa: E402


@pytest.fixture(autouse=True)
def tmp_data_dir(tmp_path, monkeypatch):
    """
    Redirect DATA_DIR to a fresh tmp directory for every test.
    This gives each test a clean SQLite file and prevents cross-test pollution.
    """
    data = tmp_path / "data"
    data.mkdir()
    monkeypatch.setenv("DATA_DIR", str(data))

    # Patch the module-level DB_PATH that was already computed at import time
    import database
    monkeypatch.setattr(database, "DB_PATH", str(data / "bot_data.db"))
    monkeypatch.setattr(database, "_DATA_DIR", data)

    # Also reset the internal lock so tests don't share state
    import asyncio
    monkeypatch.setattr(database, "_lock", asyncio.Lock())

    yield data


# ── Sample data ───────────────────────────────────────────────────────────────

CHOCO_PROFILE = {
    "name": "Choco Bar",
    "brand": "Acme",
    "netWeight": "40g",
    "price": "12.50 USD",
    "type": "Chocolate bar",
    "origin": "Vietnam",
    "manufacturer": "Acme Foods",
    "importer": "N/A",
    "labelIngredients": "Sugar, cocoa butter, milk powder, soy lecithin (E322)",
    "ingredients": ["Sugar", "Cocoa butter", "Milk powder", "Soy lecithin"],
    "additives": [{"code": "E322", "name": "Lecithin", "function": "Emulsifier"}],
    "allergens": ["Milk", "Soy"],
    "specs": {"moisture": "1.5%", "brix": "N/A", "texture": "Snappy", "flavorProfile": "Sweet, milky"},
}

CHOCO_INSIGHTS = {
    "competitors": [
        {
            "name": "Rival A",
            "price": "10 USD",
            "usp": "Cheaper",
            "nutrition": {"energy": "520 kcal", "sugar": "50 g", "fat": "30 g"},
            "sensory": {"sweetness": "High"},
        },
        {
            "name": "Rival B",
            "pricePer100g": "25 USD",
            "usp": "Organic",
            "nutrition": {"energy": "480 kcal", "sugar": "N/A", "fat": "28 g"},
        },
    ],
    "radarChart": [
        {"axis": "Sweetness", "score": 8},
        {"axis": "Sourness", "score": 2},
        {"axis": "Aroma", "score": 7},
        {"axis": "Texture", "score": 6},
        {"axis": "Appearance", "score": 7},
    ],
    "swot": {
        "strengths": ["Brand recognition"],
        "weaknesses": ["High sugar"],
        "opportunities": ["Low-sugar line"],
        "threats": ["Imports"],
    },
    "improvements": [{"title": "Reduce sugar", "description": "Swap 20% sugar for inulin."}],
    "reviews": {
        "summary": "Mostly positive.",
        "keyThemes": ["sweet", "creamy"],
        "items": [{"source": "Shopee", "rating": 5, "content": "Love it!"}],
    },
    "persona": {"targetAudience": "Students", "expansionPotential": ["Korea"]},
}


@pytest.fixture
def choco_profile() -> ProductProfile:
    return ProductProfile.from_dict(CHOCO_PROFILE)


@pytest.fixture
def choco_insights() -> AnalysisInsights:
    return AnalysisInsights.from_dict(CHOCO_INSIGHTS)


class FakeProvider(AnalysisProvider):
    """
    In-memory provider. `profile_result` / `insights_result` may be a value
    or an exception instance to raise. Every call is appended to `calls`.
    """

    def __init__(self, profile_result=None, insights_result=None):
        self.name     = "fake"
        self.model_id = "fake-model"
        self.profile_result  = profile_result
        self.insights_result = insights_result
        self.calls: list[tuple] = []
        # Awaited inside each stage when set; lets tests act mid-flight
        self.on_profile = None
        self.on_insights = None

    async def analyze_profile(self, text: str, media: Optional[EncodedMedia], language: str) -> ProfileAnalysis:
        self.calls.append(("profile", text, media, language))
        if self.on_profile is not None:
            await self.on_profile()
        if isinstance(self.profile_result, Exception):
            raise self.profile_result
        return self.profile_result

    async def analyze_insights(
        self,
        text: str,
        media: Optional[EncodedMedia],
        profile: ProductProfile,
        language: str,
    ) -> AnalysisInsights:
        self.calls.append(("insights", text, media, profile, language))
        if self.on_insights is not None:
            await self.on_insights()
        if isinstance(self.insights_result, Exception):
            raise self.insights_result
        return self.insights_result

    def stage_calls(self, stage: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == stage]

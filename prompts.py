"""
Prompt templates for the two analysis stages.

Both builders are pure: same inputs → same prompt, no I/O, no errors.
The output language is only *requested* from the model, never enforced.
"""
from __future__ import annotations

import json

from models import ProductProfile

# code → name used inside the prompt
LANGUAGES: dict[str, str] = {
    "vi": "Vietnamese",
    "en": "English",
    "ko": "Korean",
}

LANGUAGE_FLAGS: dict[str, str] = {"vi": "🇻🇳", "en": "🇺🇸", "ko": "🇰🇷"}

RADAR_AXES: tuple[str, ...] = ("Sweetness", "Sourness", "Aroma", "Texture", "Appearance")

COMPETITOR_COUNT   = 3
IMPROVEMENT_COUNT  = 3


def language_name(code: str) -> str:
    """Display name for a language code; unknown codes pass through as-is."""
    return LANGUAGES.get(code, code)


_PROFILE_SCHEMA = """{
  "profile": {
    "name": "...", "brand": "...", "netWeight": "...", "price": "...",
    "type": "...", "origin": "...", "manufacturer": "...", "importer": "...",
    "labelIngredients": "full ingredient list exactly as printed",
    "ingredients": ["..."],
    "additives": [{"code": "E330", "name": "...", "function": "..."}],
    "allergens": ["..."],
    "specs": {"moisture": "...", "brix": "...", "texture": "...", "flavorProfile": "..."}
  }
}"""

_INSIGHTS_SCHEMA = """{
  "competitors": [
    {
      "name": "...", "price": "...", "pricePer100g": "...", "usp": "...",
      "nutrition": {"energy": "... kcal/100g", "sugar": "... g/100g", "fat": "... g/100g"},
      "sensory": {"sweetness": "...", "texture": "..."}
    }
  ],
  "radarChart": [{"axis": "Sweetness", "score": 7}],
  "swot": {"strengths": ["..."], "weaknesses": ["..."], "opportunities": ["..."], "threats": ["..."]},
  "improvements": [{"title": "...", "description": "..."}],
  "reviews": {
    "summary": "...",
    "keyThemes": ["..."],
    "items": [{"source": "...", "rating": 4, "content": "..."}]
  },
  "persona": {"targetAudience": "...", "expansionPotential": ["..."]}
}"""


def build_profile_prompt(text: str, language: str) -> str:
    """Stage 1: identify the product and extract its label facts."""
    return (
        f"Input Query: {text}\n"
        f"Target Language: {language_name(language)} (Translate content to this language).\n\n"
        "TASK: Detailed Product Profiling ONLY.\n\n"
        "1. Identify Name, Brand, Weight, Price, Type, Origin, Manufacturer, and Importer.\n"
        "2. Extract the FULL ingredient list exactly as written on the label.\n"
        "3. Identify E-numbers (Codex) and explain their function.\n"
        "4. Identify allergens.\n"
        "5. Estimate Specs: Moisture, Brix, Texture, Flavor Profile "
        "(use \"N/A\" when it cannot be estimated).\n\n"
        "OUTPUT FORMAT:\n"
        "Return ONLY raw JSON — no markdown, no code fences, no prose. Structure:\n"
        f"{_PROFILE_SCHEMA}\n"
    )


def build_insights_prompt(text: str, language: str, profile: ProductProfile) -> str:
    """Stage 2: benchmark, SWOT and persona, using the stage-1 profile as context."""
    profile_json = json.dumps(profile.to_dict(), ensure_ascii=False)
    axes = ", ".join(RADAR_AXES)
    return (
        f"Target Language: {language_name(language)} (Translate output).\n\n"
        f"CONTEXT - Product Profile: {profile_json}\n"
        f"ORIGINAL INPUT: {text}\n\n"
        "TASK: Deep R&D Market Analysis & Strategy.\n\n"
        f"1. Benchmarking: Find {COMPETITOR_COUNT} direct competitors "
        "(prioritize Vietnam/Asia). Compare Price, USP, Sensory, Nutrition.\n"
        f"2. Radar Chart: Score (1-10) for exactly these axes: {axes}.\n"
        "3. SWOT: Strengths, Weaknesses, Opportunities, Threats.\n"
        f"4. Improvements: {IMPROVEMENT_COUNT} R&D ideas.\n"
        "5. Reviews: Summarize customer sentiment and key themes, with sample reviews rated 1-5.\n"
        "6. Persona: Target audience & expansion opportunities.\n\n"
        "OUTPUT FORMAT:\n"
        "Return ONLY raw JSON — no markdown, no code fences, no prose. Structure:\n"
        f"{_INSIGHTS_SCHEMA}\n"
    )

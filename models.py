"""
models.py — canonical home of the analysis data types.

Every type parses the model's JSON with from_dict() (tolerant: wrong types
and missing keys degrade to empty values, never raise) and serialises back
with to_dict() using the same camelCase keys the prompts ask for, so an
exported record can be fed straight back into from_dict().
"""
from __future__ import annotations

import base64
import math
from dataclasses import dataclass, field
from typing import Any, Optional


# ── Parsing helpers ───────────────────────────────────────────────────────────

def _str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return _str(value)


def _str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value else []
    if not isinstance(value, (list, tuple)):
        return []
    return [_str(v) for v in value if v is not None]


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _dict_list(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _compact(data: dict) -> dict:
    """Drop None values so absent fields stay absent on export."""
    return {k: v for k, v in data.items() if v is not None}


# ── Stage 1: product profile ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Additive:
    """One E-number / Codex entry from the label."""
    code: str
    name: str
    function: str

    @classmethod
    def from_dict(cls, data: dict) -> "Additive":
        return cls(
            code=_str(data.get("code")),
            name=_str(data.get("name")),
            function=_str(data.get("function")),
        )

    def to_dict(self) -> dict:
        return {"code": self.code, "name": self.name, "function": self.function}


@dataclass(frozen=True)
class ProductSpecs:
    """Estimated measurements — any of them may be absent or "N/A"."""
    moisture: Optional[str] = None
    brix: Optional[str] = None
    texture: Optional[str] = None
    flavor_profile: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ProductSpecs":
        return cls(
            moisture=_opt_str(data.get("moisture")),
            brix=_opt_str(data.get("brix")),
            texture=_opt_str(data.get("texture")),
            flavor_profile=_opt_str(data.get("flavorProfile")),
        )

    def to_dict(self) -> dict:
        return _compact({
            "moisture": self.moisture,
            "brix": self.brix,
            "texture": self.texture,
            "flavorProfile": self.flavor_profile,
        })


@dataclass(frozen=True)
class ProductProfile:
    """Identity and label facts of one product. Set once per session."""
    name: str = ""
    brand: str = ""
    net_weight: str = ""
    price: str = ""
    type: str = ""
    origin: str = ""
    manufacturer: str = ""
    importer: str = ""
    label_ingredients: str = ""
    ingredients: tuple[str, ...] = ()
    additives: tuple[Additive, ...] = ()
    allergens: tuple[str, ...] = ()         # set semantics
    specs: ProductSpecs = field(default_factory=ProductSpecs)

    @classmethod
    def from_dict(cls, data: dict) -> "ProductProfile":
        allergens = tuple(dict.fromkeys(_str_list(data.get("allergens"))))
        return cls(
            name=_str(data.get("name")),
            brand=_str(data.get("brand")),
            net_weight=_str(data.get("netWeight")),
            price=_str(data.get("price")),
            type=_str(data.get("type")),
            origin=_str(data.get("origin")),
            manufacturer=_str(data.get("manufacturer")),
            importer=_str(data.get("importer")),
            label_ingredients=_str(data.get("labelIngredients")),
            ingredients=tuple(_str_list(data.get("ingredients"))),
            additives=tuple(Additive.from_dict(a) for a in _dict_list(data.get("additives"))),
            allergens=allergens,
            specs=ProductSpecs.from_dict(_dict(data.get("specs"))),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "brand": self.brand,
            "netWeight": self.net_weight,
            "price": self.price,
            "type": self.type,
            "origin": self.origin,
            "manufacturer": self.manufacturer,
            "importer": self.importer,
            "labelIngredients": self.label_ingredients,
            "ingredients": list(self.ingredients),
            "additives": [a.to_dict() for a in self.additives],
            "allergens": list(self.allergens),
            "specs": self.specs.to_dict(),
        }


@dataclass
class ProfileAnalysis:
    """Stage-1 result: the profile plus the web sources Gemini cited."""
    profile: ProductProfile
    sources: list[str] = field(default_factory=list)


# ── Stage 2: insights ─────────────────────────────────────────────────────────

@dataclass
class Nutrition:
    energy: Optional[str] = None
    sugar: Optional[str] = None
    fat: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Nutrition":
        return cls(
            energy=_opt_str(data.get("energy")),
            sugar=_opt_str(data.get("sugar")),
            fat=_opt_str(data.get("fat")),
        )

    def to_dict(self) -> dict:
        return _compact({"energy": self.energy, "sugar": self.sugar, "fat": self.fat})


@dataclass
class Competitor:
    name: str
    price: Optional[str] = None
    price_per_100g: Optional[str] = None
    usp: str = ""
    nutrition: Nutrition = field(default_factory=Nutrition)
    sensory: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Competitor":
        return cls(
            name=_str(data.get("name")),
            price=_opt_str(data.get("price")),
            price_per_100g=_opt_str(data.get("pricePer100g")),
            usp=_str(data.get("usp")),
            nutrition=Nutrition.from_dict(_dict(data.get("nutrition"))),
            sensory={_str(k): _str(v) for k, v in _dict(data.get("sensory")).items()},
        )

    def to_dict(self) -> dict:
        return _compact({
            "name": self.name,
            "price": self.price,
            "pricePer100g": self.price_per_100g,
            "usp": self.usp,
            "nutrition": self.nutrition.to_dict(),
            "sensory": dict(self.sensory),
        })


@dataclass
class RadarPoint:
    axis: str
    score: float

    @classmethod
    def from_dict(cls, data: dict) -> "RadarPoint":
        axis  = data.get("axis", data.get("subject"))
        score = data.get("score", data.get("value", data.get("A")))
        try:
            value = float(score)
        except (TypeError, ValueError):
            value = 0.0
        if not math.isfinite(value):
            value = 0.0
        return cls(axis=_str(axis), score=value)

    def to_dict(self) -> dict:
        return {"axis": self.axis, "score": self.score}


@dataclass
class Swot:
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    opportunities: list[str] = field(default_factory=list)
    threats: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Swot":
        return cls(
            strengths=_str_list(data.get("strengths")),
            weaknesses=_str_list(data.get("weaknesses")),
            opportunities=_str_list(data.get("opportunities")),
            threats=_str_list(data.get("threats")),
        )

    def to_dict(self) -> dict:
        return {
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "opportunities": list(self.opportunities),
            "threats": list(self.threats),
        }


@dataclass
class Improvement:
    title: str
    description: str

    @classmethod
    def from_dict(cls, data: dict) -> "Improvement":
        return cls(title=_str(data.get("title")), description=_str(data.get("description")))

    def to_dict(self) -> dict:
        return {"title": self.title, "description": self.description}


@dataclass
class ReviewItem:
    source: str
    rating: int             # 1..5, 0 when the model gave nothing usable
    content: str

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewItem":
        try:
            rating = max(1, min(5, round(float(data.get("rating")))))
        except (TypeError, ValueError, OverflowError):
            rating = 0
        return cls(source=_str(data.get("source")), rating=rating, content=_str(data.get("content")))

    def to_dict(self) -> dict:
        return {"source": self.source, "rating": self.rating, "content": self.content}


@dataclass
class Reviews:
    summary: str = ""
    key_themes: list[str] = field(default_factory=list)
    items: list[ReviewItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Reviews":
        return cls(
            summary=_str(data.get("summary")),
            key_themes=_str_list(data.get("keyThemes")),
            items=[ReviewItem.from_dict(i) for i in _dict_list(data.get("items"))],
        )

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "keyThemes": list(self.key_themes),
            "items": [i.to_dict() for i in self.items],
        }


@dataclass
class Persona:
    target_audience: str = ""
    expansion_potential: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Persona":
        return cls(
            target_audience=_str(data.get("targetAudience")),
            expansion_potential=_str_list(data.get("expansionPotential")),
        )

    def to_dict(self) -> dict:
        return {
            "targetAudience": self.target_audience,
            "expansionPotential": list(self.expansion_potential),
        }


@dataclass
class AnalysisInsights:
    """
    Stage-2 result. Partial by construction: a section the model left out
    (or sent with the wrong shape) stays None and is omitted from to_dict().
    """
    competitors: Optional[list[Competitor]] = None
    radar_chart: Optional[list[RadarPoint]] = None
    swot: Optional[Swot] = None
    improvements: Optional[list[Improvement]] = None
    reviews: Optional[Reviews] = None
    persona: Optional[Persona] = None
    sources: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, sources: Optional[list[str]] = None) -> "AnalysisInsights":
        def _list_of(key, item_cls):
            raw = data.get(key)
            if not isinstance(raw, list):
                return None
            return [item_cls.from_dict(d) for d in raw if isinstance(d, dict)]

        def _obj(key, obj_cls):
            raw = data.get(key)
            return obj_cls.from_dict(raw) if isinstance(raw, dict) else None

        return cls(
            competitors=_list_of("competitors", Competitor),
            radar_chart=_list_of("radarChart", RadarPoint),
            swot=_obj("swot", Swot),
            improvements=_list_of("improvements", Improvement),
            reviews=_obj("reviews", Reviews),
            persona=_obj("persona", Persona),
            sources=list(sources or []),
        )

    def to_dict(self) -> dict:
        """Insight sections only — sources are merged at the session level."""
        return _compact({
            "competitors": [c.to_dict() for c in self.competitors] if self.competitors is not None else None,
            "radarChart": [r.to_dict() for r in self.radar_chart] if self.radar_chart is not None else None,
            "swot": self.swot.to_dict() if self.swot else None,
            "improvements": [i.to_dict() for i in self.improvements] if self.improvements is not None else None,
            "reviews": self.reviews.to_dict() if self.reviews else None,
            "persona": self.persona.to_dict() if self.persona else None,
        })


# ── Input ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EncodedMedia:
    """Transport-safe media: base64 text (no data-URI prefix) + MIME type."""
    payload: str
    content_type: str

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.payload)


@dataclass
class AnalysisInput:
    """
    What the user submitted. `media` is the raw source (bytes, path or
    file-like); it's encoded by the session right before stage 1.
    """
    text: str = ""
    media: Any = None
    media_type: Optional[str] = None
    filename: Optional[str] = None
    kind: str = "text"          # text | photo | document | voice, for logs only

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and self.media is None

"""
comparison.py — display metrics for the competitor benchmark table.

The main product and its competitors carry price/nutrition as free text
("12.50 USD", "520 kcal/100g"). Each metric has a named accessor that knows
which field to read on which kind of product; the leading number is parsed
out and turned into a bar width relative to the largest value in the row.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from models import Competitor, ProductProfile

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def parse_numeric(text: Optional[str]) -> float:
    """First number in `text`; 0 when there is none ("N/A", "", None)."""
    if not text:
        return 0.0
    match = _NUMBER_RE.search(str(text))
    return float(match.group(0)) if match else 0.0


def bar_widths(values: list[float]) -> list[float]:
    """Each value as a percentage of the row maximum. All 0 when the max is 0."""
    peak = max(values, default=0.0)
    if peak <= 0:
        return [0.0 for _ in values]
    return [v / peak * 100 for v in values]


# ── Products ──────────────────────────────────────────────────────────────────

@dataclass
class ComparedProduct:
    name: str
    is_main: bool
    usp: str = ""
    price: Optional[str] = None
    energy: Optional[str] = None
    sugar: Optional[str] = None
    fat: Optional[str] = None
    sensory: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_profile(cls, profile: ProductProfile, fallback_name: str = "This product") -> "ComparedProduct":
        # The label profile has no per-100g nutrition block
        return cls(
            name=profile.name or fallback_name,
            is_main=True,
            price=profile.price or None,
        )

    @classmethod
    def from_competitor(cls, competitor: Competitor) -> "ComparedProduct":
        return cls(
            name=competitor.name,
            is_main=False,
            usp=competitor.usp,
            price=competitor.price or competitor.price_per_100g,
            energy=competitor.nutrition.energy,
            sugar=competitor.nutrition.sugar,
            fat=competitor.nutrition.fat,
            sensory=dict(competitor.sensory),
        )


def price_text(p: ComparedProduct) -> Optional[str]:
    return p.price


def energy_text(p: ComparedProduct) -> Optional[str]:
    return p.energy


def sugar_text(p: ComparedProduct) -> Optional[str]:
    return p.sugar


def fat_text(p: ComparedProduct) -> Optional[str]:
    return p.fat


@dataclass(frozen=True)
class Metric:
    key: str
    label: str
    unit_label: str
    text_of: Callable[[ComparedProduct], Optional[str]]

    def value_of(self, product: ComparedProduct) -> float:
        return parse_numeric(self.text_of(product))


METRICS: tuple[Metric, ...] = (
    Metric("price",  "Price",  "",            price_text),
    Metric("energy", "Energy", "(kcal/100g)", energy_text),
    Metric("sugar",  "Sugar",  "(g/100g)",    sugar_text),
    Metric("fat",    "Fat",    "(g/100g)",    fat_text),
)


# ── Table ─────────────────────────────────────────────────────────────────────

@dataclass
class MetricCell:
    display: str        # original text, "" when absent
    value: float
    width: float        # 0..100


@dataclass
class MetricRow:
    metric: Metric
    cells: list[MetricCell]


@dataclass
class ComparisonTable:
    products: list[ComparedProduct]
    rows: list[MetricRow]


def build_comparison(profile: ProductProfile, competitors: Optional[list[Competitor]]) -> ComparisonTable:
    """Main product first, then competitors; one row per metric."""
    products = [ComparedProduct.from_profile(profile)]
    products += [ComparedProduct.from_competitor(c) for c in competitors or []]

    rows = []
    for metric in METRICS:
        values = [metric.value_of(p) for p in products]
        widths = bar_widths(values)
        cells  = [
            MetricCell(display=metric.text_of(p) or "", value=v, width=w)
            for p, v, w in zip(products, values, widths)
        ]
        rows.append(MetricRow(metric=metric, cells=cells))
    return ComparisonTable(products=products, rows=rows)

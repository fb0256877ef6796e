"""
style.py — Complete visual style system for the bot.

Design language:
  • Structured cards with consistent emoji icons
  • Unicode box-drawing dividers
  • Text bar charts for the radar and the competitor benchmark
  • MarkdownV2 throughout

All text that goes into Telegram messages should be formatted through this
module. Cards only *read* session state; they never change it.
"""
from __future__ import annotations

from typing import Optional

from comparison import ComparisonTable
from models import AnalysisInsights, Persona, ProductProfile, RadarPoint, Reviews, Swot
from prompts import LANGUAGE_FLAGS, LANGUAGES, language_name

MAX_MESSAGE = 4050      # Telegram hard limit is 4096; leave room for the ellipsis

# ── Escape ────────────────────────────────────────────────────────────────────

def esc(text: str) -> str:
    """Escape all MarkdownV2 special characters."""
    for ch in r"\_*[]()~`>#+-=|{}.!":
        text = text.replace(ch, f"\\{ch}")
    return text


# ── Visual constants ──────────────────────────────────────────────────────────

DIV   = "━━━━━━━━━━━━━━━━━━━━━━━━━━"    # thick divider
SDIV  = "┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄"    # subtle divider

STARS = {5: "★★★★★", 4: "★★★★☆", 3: "★★★☆☆", 2: "★★☆☆☆", 1: "★☆☆☆☆", 0: "☆☆☆☆☆"}


def star_bar(rating: Optional[float]) -> str:
    if rating is None:
        return "☆☆☆☆☆"
    r = round(rating)
    return STARS.get(max(0, min(5, r)), "☆☆☆☆☆")


def bar(percent: float, cells: int = 10) -> str:
    """Text progress bar for a 0–100 value."""
    filled = round(max(0.0, min(100.0, percent)) / 100 * cells)
    return "█" * filled + "░" * (cells - filled)


def _truncate(text: str) -> str:
    """Cut at a line break so no MarkdownV2 entity or escape is left open."""
    if len(text) <= MAX_MESSAGE:
        return text
    cut = text.rfind("\n", 0, MAX_MESSAGE)
    return text[:cut if cut > 0 else MAX_MESSAGE].rstrip("\\") + "\n\\.\\.\\."


def _clip(text: str, limit: int = 1500) -> str:
    """Single-line, length-capped raw text; escape after clipping."""
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit].rstrip() + "..."


def _na(value: Optional[str]) -> str:
    return esc(value) if value else "N/A"


def _bullets(items: list[str], icon: str = "▸") -> str:
    return "\n".join(f"  {icon} {esc(i)}" for i in items) or "  _none_"


# ══════════════════════════════════════════════════════════════════════════════
# START / HELP / LANGUAGE
# ══════════════════════════════════════════════════════════════════════════════

def welcome() -> str:
    return (
        f"🍬 *SWEETTECH R&D ASSISTANT*\n"
        f"{DIV}\n\n"
        f"Send a product label photo or describe a product,\n"
        f"and I'll research it with AI \\+ live web search\\.\n\n"
        f"✨  *What you get*\n"
        f"▸ Product profile: ingredients, E\\-numbers, allergens, specs\n"
        f"▸ Benchmark against 3 competitors\n"
        f"▸ Sensory radar, SWOT and R&D ideas\n"
        f"▸ Customer voice and target persona\n"
        f"▸ PDF and raw data export\n\n"
        f"{DIV}\n"
        f"_📸 Send a photo or type a product name to start_"
    )


def help_text(max_requests: int, window_secs: int) -> str:
    return (
        f"📖 *HOW TO USE*\n"
        f"{DIV}\n\n"
        f"*1️⃣  Send your input*\n"
        f"_A label photo, an image/audio file, a voice note or plain text_\n\n"
        f"*2️⃣  Profile arrives first*\n"
        f"_Name, brand, ingredients, additives, allergens, specs_\n\n"
        f"*3️⃣  Market insights follow*\n"
        f"_Competitors, radar, SWOT, reviews, persona_\n\n"
        f"*4️⃣  Export*\n"
        f"_Full report, PDF or raw JSON data_\n\n"
        f"{DIV}\n"
        f"⏱ Up to *{max_requests} analyses* every *{window_secs} seconds*\\.\n\n"
        f"_Commands: /start · /help · /lang · /new · /report · /export · /history_"
    )


def language_menu(current: str) -> str:
    return (
        f"🌐 *ANALYSIS LANGUAGE*\n"
        f"{SDIV}\n"
        f"Current: {LANGUAGE_FLAGS.get(current, '🏳️')} *{esc(language_name(current))}*\n\n"
        f"_Results will be written in the language you pick:_"
    )


def language_set(code: str) -> str:
    return f"✅ Analysis language set to {LANGUAGE_FLAGS.get(code, '')} *{esc(language_name(code))}*"


def language_choices() -> list[tuple[str, str]]:
    """(code, button label) pairs for the language keyboard."""
    return [(code, f"{LANGUAGE_FLAGS.get(code, '')} {name}") for code, name in LANGUAGES.items()]


# ══════════════════════════════════════════════════════════════════════════════
# LOADING
# ══════════════════════════════════════════════════════════════════════════════

def loading_profile(language: str, has_media: bool) -> str:
    source = "your photo" if has_media else "your description"
    return (
        f"🔍 *Scanning Product Profile*\n"
        f"{SDIV}\n"
        f"Reading {esc(source)} in {esc(language_name(language))}…\n\n"
        f"⠋ Identifying ingredients, origin and specs…"
    )


def loading_insights() -> str:
    return (
        f"{SDIV}\n"
        f"⠙ _Generating market insights & competitor analysis…_\n"
        f"_Researching real prices and reviews_"
    )


# ══════════════════════════════════════════════════════════════════════════════
# PROFILE
# ══════════════════════════════════════════════════════════════════════════════

def profile_card(profile: ProductProfile, insights_pending: bool = False) -> str:
    additives = "\n".join(
        f"  ▸ `{esc(a.code)}` {esc(a.name)} · _{esc(a.function)}_" for a in profile.additives
    ) or "  _none detected_"
    specs = profile.specs
    allergen_block = (
        f"\n\n⚠️ *Allergens:* {esc(', '.join(profile.allergens))}" if profile.allergens else ""
    )
    text = (
        f"✨ *PRODUCT PROFILE*\n"
        f"{DIV}\n\n"
        f"🏷️ *{esc(profile.name or 'Unknown product')}*\n"
        f"📦 {_na(profile.type)}\n"
        f"🏢 {_na(profile.brand)}   ⚖️ {_na(profile.net_weight)}\n"
        f"🌍 {_na(profile.origin)}   💰 {_na(profile.price)}\n"
        f"🏭 {_na(profile.manufacturer)}"
        + (f"   🚢 {esc(profile.importer)}" if profile.importer else "")
        + f"\n\n"
        f"🧾 *Ingredients*\n_{_na(_clip(profile.label_ingredients))}_\n\n"
        f"🧪 *Additives*\n{additives}\n\n"
        f"📐 *Specs*\n"
        f"  Moisture: {_na(specs.moisture)}\n"
        f"  Brix: {_na(specs.brix)}\n"
        f"  Texture: {_na(specs.texture)}\n"
        f"  Flavor: {_na(specs.flavor_profile)}"
        f"{allergen_block}"
    )
    if insights_pending:
        text += f"\n\n{loading_insights()}"
    return _truncate(text)


# ══════════════════════════════════════════════════════════════════════════════
# INSIGHTS
# ══════════════════════════════════════════════════════════════════════════════

def radar_card(points: list[RadarPoint]) -> str:
    width = max((len(p.axis) for p in points), default=0)
    lines = [
        f"`{esc(p.axis.ljust(width))}` {bar(p.score * 10)} {esc(f'{p.score:g}')}/10"
        for p in points
    ]
    return f"🕸️ *SENSORY RADAR*\n{SDIV}\n" + "\n".join(lines)


def comparison_card(table: ComparisonTable) -> str:
    lines = [f"📊 *COMPETITIVE BENCHMARK*\n{DIV}"]
    for i, p in enumerate(table.products):
        tag = "  _\\(this product\\)_" if p.is_main else ""
        lines.append(f"\n*{i + 1}\\. {esc(p.name)}*{tag}")
        if p.usp:
            lines.append(f"   💡 {esc(p.usp)}")
        if p.sensory:
            sensory = " · ".join(f"{k}: {v}" for k, v in p.sensory.items())
            lines.append(f"   👅 _{esc(sensory)}_")

    for row in table.rows:
        label = f"{row.metric.label} {row.metric.unit_label}".strip()
        lines.append(f"\n{SDIV}\n*{esc(label)}*")
        for p, cell in zip(table.products, row.cells):
            shown = esc(cell.display) if cell.display else "–"
            lines.append(f"`{bar(cell.width)}` {shown}  _{esc(p.name[:24])}_")
    return _truncate("\n".join(lines))


def swot_card(swot: Swot) -> str:
    return (
        f"🧭 *SWOT ANALYSIS*\n{DIV}\n\n"
        f"💪 *Strengths*\n{_bullets(swot.strengths)}\n\n"
        f"🩹 *Weaknesses*\n{_bullets(swot.weaknesses)}\n\n"
        f"🚀 *Opportunities*\n{_bullets(swot.opportunities)}\n\n"
        f"⚡ *Threats*\n{_bullets(swot.threats)}"
    )


def improvements_card(improvements: list) -> str:
    items = "\n\n".join(
        f"*{i + 1}\\. {esc(imp.title)}*\n{esc(imp.description)}"
        for i, imp in enumerate(improvements)
    ) or "_none_"
    return f"🧑‍🍳 *R&D IMPROVEMENTS*\n{DIV}\n\n{items}"


def reviews_card(reviews: Reviews, max_items: int = 2) -> str:
    themes = "  ".join(f"\\#{esc(t)}" for t in reviews.key_themes)
    samples = "\n\n".join(
        f"▎*{esc(r.source)}*  {star_bar(r.rating)}\n   _{esc(r.content[:200])}_"
        for r in reviews.items[:max_items]
    )
    parts = [f"🗣️ *CUSTOMER VOICE*\n{DIV}\n", f"_“{esc(reviews.summary)}”_"]
    if themes:
        parts.append(f"\n{themes}")
    if samples:
        parts.append(f"\n{SDIV}\n{samples}")
    return "\n".join(parts)


def persona_card(persona: Persona) -> str:
    return (
        f"🎯 *PERSONA & EXPANSION*\n{DIV}\n\n"
        f"*Current target*\n{_na(persona.target_audience)}\n\n"
        f"*Expansion opportunities*\n{_bullets(persona.expansion_potential, '→')}"
    )


def sources_card(sources: list[str], limit: int = 15) -> str:
    shown = "\n".join(f"▸ {esc(s)}" for s in sources[:limit])
    more  = f"\n_…and {len(sources) - limit} more_" if len(sources) > limit else ""
    return _truncate(f"🌐 *DATA SOURCES \\({len(sources)}\\)*\n{SDIV}\n{shown}{more}")


def insights_cards(profile: ProductProfile, insights: AnalysisInsights, table: Optional[ComparisonTable]) -> list[str]:
    """One message per populated section; absent sections are skipped."""
    cards: list[str] = []
    if insights.radar_chart:
        cards.append(radar_card(insights.radar_chart))
    if table is not None:
        cards.append(comparison_card(table))
    if insights.swot:
        cards.append(swot_card(insights.swot))
    if insights.improvements:
        cards.append(improvements_card(insights.improvements))
    if insights.reviews:
        cards.append(reviews_card(insights.reviews))
    if insights.persona:
        cards.append(persona_card(insights.persona))
    return [_truncate(c) for c in cards]


def complete_footer(n_sources: int) -> str:
    return (
        f"✅ *Analysis complete*\n"
        f"{SDIV}\n"
        f"🌐 {n_sources} web sources cited\n"
        f"_Export the report or start a new analysis:_"
    )


# ══════════════════════════════════════════════════════════════════════════════
# HISTORY / STATS
# ══════════════════════════════════════════════════════════════════════════════

def history_card(logs: list) -> str:
    if not logs:
        return f"📜 *HISTORY*\n{SDIV}\n_No analyses yet\\._"
    lines = [f"📜 *HISTORY*\n{SDIV}"]
    for log in logs:
        icon = "✅" if log.status == "complete" else "❌"
        name = log.product_name or "unidentified"
        when = log.created_at.strftime("%Y-%m-%d %H:%M")
        lines.append(
            f"{icon} *{esc(name)}*  `{esc(log.language)}`\n"
            f"   _{esc(when)} · {esc(log.input_kind)} · {log.competitor_count} competitors_"
        )
    return _truncate("\n".join(lines))


def stats_card(stats: dict) -> str:
    failures = "\n".join(
        f"  ▸ {esc(stage)}: {n}" for stage, n in sorted(stats["failures_by_stage"].items())
    ) or "  _none_"
    languages = " · ".join(
        f"{esc(code)} {n}" for code, n in sorted(stats["by_language"].items())
    ) or "–"
    return (
        f"📈 *STATS*\n{DIV}\n\n"
        f"🔢 Analyses: *{stats['total']}*\n"
        f"✅ Complete: *{stats['complete']}*   ❌ Errored: *{stats['errored']}*\n"
        f"👥 Users: *{stats['unique_users']}*\n"
        f"🌐 {languages}\n\n"
        f"*Failures by stage*\n{failures}"
    )


# ══════════════════════════════════════════════════════════════════════════════
# ERROR MESSAGES
# ══════════════════════════════════════════════════════════════════════════════

def error_missing_key() -> str:
    return (
        f"⚠️ *Gemini API Key Missing*\n"
        f"{DIV}\n\n"
        f"The bot can't analyse anything until an admin sets\n"
        f"`GOOGLE_API_KEY` in the environment and restarts it\\.\n\n"
        f"_Free keys are available at aistudio\\.google\\.com_"
    )


_STAGE_HINTS = {
    "profile":  "Couldn't identify this product\\. Try a clearer label photo or a more specific name\\.",
    "insights": "The profile above is kept\\. Market research failed, send the input again to retry\\.",
    "encoding": "That file couldn't be read\\. Try sending it again as a photo\\.",
}


def error_card(message: Optional[str], stage: Optional[str]) -> str:
    if stage == "configuration":
        return error_missing_key()
    hint = _STAGE_HINTS.get(stage or "", "Please try again\\.")
    return (
        f"❌ *Analysis Failed*\n"
        f"{DIV}\n\n"
        f"{esc(message or 'An unknown error occurred')}\n\n"
        f"{hint}"
    )


def error_busy() -> str:
    return (
        f"⏳ *Still working…*\n"
        f"{SDIV}\n"
        f"Your current analysis hasn't finished yet\\.\n"
        f"_Wait for it to complete before sending something new\\._"
    )


def error_nothing_to_export() -> str:
    return "📭 Nothing to export yet\\. Send a photo or product name first\\."


def empty_input() -> str:
    return (
        f"📸 *Send a Product*\n"
        f"{SDIV}\n"
        f"I need a label photo or a product description\\.\n"
        f"_Just take a pic or type a name and send it here\\!_"
    )


def session_reset() -> str:
    return f"🆕 *New analysis*\n{SDIV}\n_Send a photo or product name to begin\\._"


def error_rate_limited(max_requests: int, window_secs: int) -> str:
    return (
        f"⏱ *Slow Down\\!*\n"
        f"{SDIV}\n"
        f"You can run up to *{max_requests} analyses* every *{window_secs} seconds*\\.\n\n"
        f"_Please wait a moment before sending another one\\._"
    )


def admin_analysis_failed(user_id: int, stage: Optional[str], message: Optional[str]) -> str:
    return (
        f"🚨 *Analysis failed*\n"
        f"{SDIV}\n"
        f"👤 `{user_id}`   🧩 stage: `{esc(stage or 'unknown')}`\n"
        f"_{esc((message or '')[:300])}_"
    )


def admin_missing_key() -> str:
    return f"🚨 *Startup warning*\n{SDIV}\n`GOOGLE_API_KEY` is not set\\. Every analysis will be refused\\."


# ══════════════════════════════════════════════════════════════════════════════
# PRINTABLE REPORT
# ══════════════════════════════════════════════════════════════════════════════

def full_report(
    profile: ProductProfile,
    insights: Optional[AnalysisInsights],
    table: Optional[ComparisonTable],
    sources: list[str],
) -> list[str]:
    """Every card in reading order, each short enough for one message."""
    messages = [profile_card(profile)]
    if insights is not None:
        messages += insights_cards(profile, insights, table)
    if sources:
        messages.append(sources_card(sources))
    return messages

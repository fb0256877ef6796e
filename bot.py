"""
bot.py — Telegram bot handlers.

All visual formatting is delegated to style.py.
All analysis is delegated to session.AnalysisSession (one per user, in-memory).
Handlers only read session state and call start() / reset() / set_language().
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

import config
import database as db
import exporter
import notifications
import style
from comparison import build_comparison
from models import AnalysisInput
from providers.gemini_provider import GeminiAnalysisClient
from session import AnalysisSession, SessionState

logger = logging.getLogger(__name__)

# ── Callback data ──────────────────────────────────────────────────────────────
CB_LANG       = "lang:"          # + language code
CB_EXPORT_PDF = "export:pdf"
CB_EXPORT_TXT = "export:txt"
CB_REPORT     = "export:report"
CB_NEW        = "nav:new"


# ── Sessions ───────────────────────────────────────────────────────────────────

_provider: Optional[GeminiAnalysisClient] = None
_sessions: dict[int, AnalysisSession] = {}


def get_provider() -> GeminiAnalysisClient:
    global _provider
    if _provider is None:
        _provider = GeminiAnalysisClient()
    return _provider


async def get_session(user_id: int) -> AnalysisSession:
    if user_id not in _sessions:
        language = await db.get_language(user_id) or config.DEFAULT_LANGUAGE
        _sessions[user_id] = AnalysisSession(get_provider(), language=language)
    return _sessions[user_id]


# ── Rate limiter ───────────────────────────────────────────────────────────────
RATE_MAX_REQUESTS = config.RATE_MAX_REQUESTS
RATE_WINDOW_SECS  = config.RATE_WINDOW_SECS
_rate_buckets: dict[int, deque] = defaultdict(deque)


def _is_rate_limited(user_id: int) -> bool:
    now    = time.monotonic()
    bucket = _rate_buckets[user_id]
    while bucket and now - bucket[0] > RATE_WINDOW_SECS:
        bucket.popleft()
    if len(bucket) >= RATE_MAX_REQUESTS:
        return True
    bucket.append(now)
    return False


# ── Keyboards ──────────────────────────────────────────────────────────────────

def language_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton(label, callback_data=f"{CB_LANG}{code}")
        for code, label in style.language_choices()
    ]])


def actions_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("🖨️  Report", callback_data=CB_REPORT),
            InlineKeyboardButton("📄  PDF",    callback_data=CB_EXPORT_PDF),
            InlineKeyboardButton("🧾  Data",   callback_data=CB_EXPORT_TXT),
        ],
        [InlineKeyboardButton("🆕  New analysis", callback_data=CB_NEW)],
    ])


# ── Progress rendering ─────────────────────────────────────────────────────────

def _progress_listener(msg: Message, bot, chat_id: int):
    """Build a session listener that renders each transition into the chat."""

    # One rejected card must not stop the rest from going out
    async def _send(text: str, **kwargs) -> None:
        try:
            await bot.send_message(
                chat_id=chat_id, text=text, parse_mode="MarkdownV2",
                disable_web_page_preview=True, **kwargs,
            )
        except Exception as exc:
            logger.error("Failed to send card to chat %d: %s", chat_id, exc)

    async def _edit(text: str) -> None:
        try:
            await msg.edit_text(text, parse_mode="MarkdownV2")
        except Exception as exc:
            logger.error("Failed to edit progress message in chat %d: %s", chat_id, exc)

    async def listener(session: AnalysisSession) -> None:
        if session.state is SessionState.INSIGHTS_LOADING:
            await _edit(style.profile_card(session.profile, insights_pending=True))

        elif session.state is SessionState.COMPLETE:
            await _edit(style.profile_card(session.profile))
            table = (
                build_comparison(session.profile, session.insights.competitors)
                if session.insights.competitors is not None else None
            )
            for card in style.insights_cards(session.profile, session.insights, table):
                await _send(card)
            if session.sources:
                await _send(style.sources_card(session.sources))
            await _send(style.complete_footer(len(session.sources)), reply_markup=actions_keyboard())

        elif session.state is SessionState.ERRORED:
            error = style.error_card(session.error, session.error_stage)
            if session.profile is not None:
                # Stage 2 failed: keep the profile on screen, report below it
                await _edit(style.profile_card(session.profile))
                await _send(error, reply_markup=actions_keyboard())
            else:
                await _edit(error)

    return listener


# ── Input extraction ───────────────────────────────────────────────────────────

async def _build_input(message: Message, context: ContextTypes.DEFAULT_TYPE) -> AnalysisInput:
    text = (message.text or message.caption or "").strip()

    if message.photo:
        file_id, mime, name, kind = message.photo[-1].file_id, None, None, "photo"
    elif message.document:
        doc = message.document
        file_id, mime, name, kind = doc.file_id, doc.mime_type, doc.file_name, "document"
    elif message.voice:
        file_id, mime, name, kind = message.voice.file_id, message.voice.mime_type or "audio/ogg", None, "voice"
    elif message.audio:
        aud = message.audio
        file_id, mime, name, kind = aud.file_id, aud.mime_type, aud.file_name, "voice"
    else:
        return AnalysisInput(text=text)

    tg_file = await context.bot.get_file(file_id)
    data    = bytes(await tg_file.download_as_bytearray())
    return AnalysisInput(text=text, media=data, media_type=mime, filename=name, kind=kind)


# ── Handlers ───────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(style.welcome(), parse_mode="MarkdownV2")
    if not config.GOOGLE_API_KEY:
        await update.message.reply_text(style.error_missing_key(), parse_mode="MarkdownV2")


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        style.help_text(RATE_MAX_REQUESTS, RATE_WINDOW_SECS),
        parse_mode="MarkdownV2",
    )


async def cmd_lang(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = await get_session(update.effective_user.id)
    await update.message.reply_text(
        style.language_menu(session.language),
        parse_mode="MarkdownV2",
        reply_markup=language_keyboard(),
    )


async def cmd_new(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = await get_session(update.effective_user.id)
    session.reset()
    await update.message.reply_text(style.session_reset(), parse_mode="MarkdownV2")


async def cmd_report(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = await get_session(update.effective_user.id)
    await _send_report(context, update.effective_chat.id, session)


async def cmd_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = await get_session(update.effective_user.id)
    if session.profile is None:
        await update.message.reply_text(style.error_nothing_to_export(), parse_mode="MarkdownV2")
        return
    await _send_pdf(context, update.effective_chat.id, session)
    await _send_data(context, update.effective_chat.id, session)


async def cmd_history(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logs = await db.get_recent_analyses(update.effective_user.id)
    await update.message.reply_text(style.history_card(logs), parse_mode="MarkdownV2")


async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_user.id not in config.ADMIN_IDS:
        return
    stats = await db.get_stats()
    await update.message.reply_text(style.stats_card(stats), parse_mode="MarkdownV2")


async def handle_input(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Any photo / file / voice / text message starts a new analysis."""
    user_id = update.effective_user.id
    message = update.message

    if not config.GOOGLE_API_KEY:
        await message.reply_text(style.error_missing_key(), parse_mode="MarkdownV2")
        return

    session = await get_session(user_id)
    if session.is_busy:
        await message.reply_text(style.error_busy(), parse_mode="MarkdownV2")
        return

    inp = await _build_input(message, context)
    if inp.is_empty:
        await message.reply_text(style.empty_input(), parse_mode="MarkdownV2")
        return

    if _is_rate_limited(user_id):
        await message.reply_text(
            style.error_rate_limited(RATE_MAX_REQUESTS, RATE_WINDOW_SECS),
            parse_mode="MarkdownV2",
        )
        return

    msg = await message.reply_text(
        style.loading_profile(session.language, has_media=inp.media is not None),
        parse_mode="MarkdownV2",
    )
    if session.is_busy:
        # Another message from this user started a run while we were downloading
        await msg.edit_text(style.error_busy(), parse_mode="MarkdownV2")
        return
    listener = _progress_listener(msg, context.bot, update.effective_chat.id)
    session.listener = listener
    await session.start(inp)

    # A newer message took over the session after a /new; its run logs itself
    if session.listener is listener:
        await _log_session(user_id, session)


async def _log_session(user_id: int, session: AnalysisSession) -> None:
    if session.state not in (SessionState.COMPLETE, SessionState.ERRORED):
        return      # reset mid-flight
    competitors = session.insights.competitors if session.insights else None
    try:
        await db.log_analysis(
            user_id=user_id,
            product_name=session.profile.name if session.profile else "",
            input_kind=session.input.kind if session.input else "text",
            language=session.language,
            status=session.state.value,
            failed_stage=session.error_stage,
            source_count=len(session.sources),
            competitor_count=len(competitors or []),
        )
    except Exception as exc:
        logger.error("Failed to log analysis: %s", exc)

    if session.state is SessionState.ERRORED:
        await notifications.admin(style.admin_analysis_failed(user_id, session.error_stage, session.error))


async def handle_unsupported(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(style.empty_input(), parse_mode="MarkdownV2")


# ── Exports ────────────────────────────────────────────────────────────────────

async def _send_report(context: ContextTypes.DEFAULT_TYPE, chat_id: int, session: AnalysisSession) -> None:
    if session.profile is None:
        await context.bot.send_message(chat_id=chat_id, text=style.error_nothing_to_export(),
                                       parse_mode="MarkdownV2")
        return
    table = (
        build_comparison(session.profile, session.insights.competitors)
        if session.insights and session.insights.competitors is not None else None
    )
    for text in style.full_report(session.profile, session.insights, table, session.sources):
        await context.bot.send_message(chat_id=chat_id, text=text, parse_mode="MarkdownV2",
                                       disable_web_page_preview=True)


async def _send_pdf(context: ContextTypes.DEFAULT_TYPE, chat_id: int, session: AnalysisSession) -> None:
    record = session.to_record()
    pdf = await asyncio.to_thread(exporter.render_pdf, record)
    await context.bot.send_document(chat_id=chat_id, document=pdf, filename=exporter.report_filename())


async def _send_data(context: ContextTypes.DEFAULT_TYPE, chat_id: int, session: AnalysisSession) -> None:
    text = exporter.to_json_text(session.to_record())
    await context.bot.send_document(
        chat_id=chat_id, document=text.encode("utf-8"), filename=exporter.DATA_FILENAME,
    )


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    user_id = update.effective_user.id
    chat_id = update.effective_chat.id
    session = await get_session(user_id)
    data    = query.data

    # ── Language chosen ───────────────────────────────────────────────────────
    if data.startswith(CB_LANG):
        code = data[len(CB_LANG):]
        try:
            session.set_language(code)
        except ValueError as exc:
            logger.warning("Rejected language %r from user %d: %s", code, user_id, exc)
            return
        await db.set_language(user_id, code)
        await query.edit_message_text(style.language_set(code), parse_mode="MarkdownV2")
        return

    # ── New analysis ──────────────────────────────────────────────────────────
    if data == CB_NEW:
        session.reset()
        await query.edit_message_reply_markup(reply_markup=None)
        await context.bot.send_message(chat_id=chat_id, text=style.session_reset(), parse_mode="MarkdownV2")
        return

    # ── Exports ───────────────────────────────────────────────────────────────
    if data in (CB_REPORT, CB_EXPORT_PDF, CB_EXPORT_TXT):
        if session.profile is None:
            await query.edit_message_text(
                "⚠️ Session expired\\. Please send a new photo or product name\\.",
                parse_mode="MarkdownV2",
            )
            return
        try:
            if data == CB_REPORT:
                await _send_report(context, chat_id, session)
            elif data == CB_EXPORT_PDF:
                await _send_pdf(context, chat_id, session)
            else:
                await _send_data(context, chat_id, session)
        except Exception as exc:
            logger.error("Export %s failed: %s", data, exc, exc_info=True)
            await context.bot.send_message(
                chat_id=chat_id, text="❌ Export failed\\. Please try again\\.", parse_mode="MarkdownV2",
            )
        return


# ── App factory ────────────────────────────────────────────────────────────────

async def _post_init(application: Application) -> None:
    await db.init_db()
    logger.info("Database ready.")


def build_application() -> Application:
    app = (
        Application.builder()
        .token(config.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        # Keeps the bot responsive while a two-stage analysis is in flight;
        # AnalysisSession refuses a second start() for the same user.
        .concurrent_updates(True)
        .build()
    )

    media = filters.PHOTO | filters.Document.IMAGE | filters.Document.AUDIO | filters.VOICE | filters.AUDIO

    app.add_handler(CommandHandler("start",   cmd_start))
    app.add_handler(CommandHandler("help",    cmd_help))
    app.add_handler(CommandHandler("lang",    cmd_lang))
    app.add_handler(CommandHandler("new",     cmd_new))
    app.add_handler(CommandHandler("report",  cmd_report))
    app.add_handler(CommandHandler("export",  cmd_export))
    app.add_handler(CommandHandler("history", cmd_history))
    app.add_handler(CommandHandler("stats",   cmd_stats))
    app.add_handler(MessageHandler(media,                           handle_input))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_input))
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(~filters.COMMAND,                handle_unsupported))
    return app

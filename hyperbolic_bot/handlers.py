import math
import logging
from dataclasses import dataclass, replace
from enum import Enum

from telegram import Update, BotCommand, BotCommandScopeChat, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, ContextTypes

from .bulk import BulkRegistry, BulkSequencer, split_prompts
from .callbacks import SelectCategory, SelectModel, SwitchModel, parse_callback
from .catalog import Category, get_model
from .config import CHUNK_PREFIX_BUFFER, TELEGRAM_MSG_LIMIT
from .dispatcher import AudioResult, EmptyResult, ImageResult, RequestDispatcher, TextResult
from .errors import BotError, BulkAlreadyRunning, InvalidCallback, UnknownModel
from .keyboards import create_category_keyboard, create_model_keyboard, create_switch_model_keyboard
from .session import Session, SessionStore

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "*Welcome to Hyperbolic AI Bot*\n\n"
    "Send your API Key to begin:\n"
    "1. Get your key at https://app.hyperbolic.xyz/\n"
    "2. Paste it here\n\n"
    "Use /remove to clear session\n"
)

HELP_TEXT = (
    "📚 *Commands:*\n"
    "/start - Start bot\n"
    "/switch - Change model\n"
    "/remove - Remove API key\n"
    "/bulk - Submit multiple prompts\n"
    "/help - Show help"
)

IMPLICIT_BULK_HELP = (
    "\n\nOr just paste prompts like:\n\n"
    "What is AI?,Tell me a joke,Best movie of 2024?\n\n"
    "*Each prompt separated by a comma!*"
)

BULK_MODE_TEXT = (
    "📥 *Bulk Mode*\n\n"
    "Send your prompts in one message separated by commas ,\n\n"
    "Example:\n"
    "What is AI?, How does blockchain work?, Tell me a joke\n\n"
    "They will be processed one by one with a delay."
)

DELIVERY_FAILED_TEXT = "❌ Could not deliver the result, please try again."

EMPTY_RESULT_TEXT = {
    Category.TEXT: "❌ No response generated",
    Category.IMAGE: "❌ No image generated",
    Category.AUDIO: "❌ No audio generated",
}


@dataclass
class BotServices:
    sessions: SessionStore
    dispatcher: RequestDispatcher
    sequencer: BulkSequencer
    bulk_runs: BulkRegistry
    implicit_bulk: bool = False


def get_services(context: ContextTypes.DEFAULT_TYPE) -> BotServices:
    return context.bot_data["services"]


class TextRoute(Enum):
    CAPTURE_API_KEY = "capture_api_key"
    BULK_INPUT = "bulk_input"
    NEED_MODEL = "need_model"
    IMPLICIT_BULK = "implicit_bulk"
    SINGLE_PROMPT = "single_prompt"


def route_text(session: Session, text: str, implicit_bulk: bool = False) -> TextRoute:
    if not session.api_key:
        return TextRoute.CAPTURE_API_KEY
    if session.bulk_awaiting_input:
        return TextRoute.BULK_INPUT
    if not session.selected_model:
        return TextRoute.NEED_MODEL
    if implicit_bulk and "," in text:
        return TextRoute.IMPLICIT_BULK
    return TextRoute.SINGLE_PROMPT


# --- Reply Helpers ---

async def reply_markdown(bot, chat_id: int, text: str, reply_markup: InlineKeyboardMarkup | None = None):
    try:
        return await bot.send_message(
            chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN, reply_markup=reply_markup
        )
    except BadRequest as e:
        if "parse entities" not in str(e).lower():
            raise
        logger.warning(f"Markdown rejected for chat {chat_id}, sending plain text: {e}")
        return await bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)


async def send_text_answer(bot, chat_id: int, text: str):
    text = f"💡 {text}"
    if len(text) <= TELEGRAM_MSG_LIMIT:
        await reply_markdown(bot, chat_id, text, reply_markup=create_switch_model_keyboard())
        return

    chunk_size = TELEGRAM_MSG_LIMIT - CHUNK_PREFIX_BUFFER
    total_parts = math.ceil(len(text) / chunk_size)
    for i, part in enumerate(range(0, len(text), chunk_size)):
        chunk = text[part:part + chunk_size]
        part_number = i + 1
        reply_markup = create_switch_model_keyboard() if part_number == total_parts else None
        # Split points can land inside markup, so long answers go out as plain text.
        await bot.send_message(
            chat_id=chat_id, text=f"({part_number}/{total_parts})\n\n{chunk}", reply_markup=reply_markup
        )


async def send_result(bot, chat_id: int, result):
    if isinstance(result, TextResult):
        await send_text_answer(bot, chat_id, result.content)
    elif isinstance(result, ImageResult):
        await bot.send_photo(
            chat_id=chat_id, photo=result.image, caption="🖼 Generated Image",
            reply_markup=create_switch_model_keyboard(),
        )
    elif isinstance(result, AudioResult):
        await bot.send_audio(
            chat_id=chat_id, audio=result.audio, caption="🔊 Generated Audio",
            reply_markup=create_switch_model_keyboard(),
        )
    elif isinstance(result, EmptyResult):
        logger.warning(f"Empty {result.category.value} result for chat {chat_id}")
        await bot.send_message(
            chat_id=chat_id, text=EMPTY_RESULT_TEXT[result.category], reply_markup=create_switch_model_keyboard()
        )


async def show_category_selection(bot, chat_id: int):
    await reply_markdown(bot, chat_id, "*📂 Choose a category:*", reply_markup=create_category_keyboard())


async def show_model_selection(bot, chat_id: int, category: Category):
    await reply_markdown(
        bot, chat_id, f"*🔧 Choose {category.value} model:*", reply_markup=create_model_keyboard(category)
    )


async def update_user_commands(context: ContextTypes.DEFAULT_TYPE, chat_id: int, session: Session):
    def mask_key(key: str | None) -> str:
        if not key or len(key) < 12:
            return "Not set" if not key else "Set"
        return f"{key[:4]}...{key[-4:]}"

    model = get_model(session.selected_model)
    model_desc = f"Model: {model.display_name}" if model else "Choose a model"

    commands = [
        BotCommand("switch", model_desc),
        BotCommand("bulk", "Submit multiple prompts"),
        BotCommand("remove", f"Remove API key ({mask_key(session.api_key)})"),
        BotCommand("help", "Show help"),
    ]
    try:
        await context.bot.set_my_commands(commands, scope=BotCommandScopeChat(chat_id=chat_id))
    except Exception as e:
        logger.warning(f"Could not set commands for user {chat_id}: {e}")


# --- Prompt Processing ---

async def process_prompt(bot, chat_id: int, services: BotServices, user_id, text: str, model_key: str | None = None):
    """Answers one prompt; every failure ends in exactly one chat reply."""
    session = services.sessions.get(user_id)
    if model_key is not None:
        session = replace(session, selected_model=model_key)

    async def indicate(action):
        await bot.send_chat_action(chat_id=chat_id, action=action)

    try:
        result = await services.dispatcher.dispatch(session, text, indicate=indicate)
    except BotError as e:
        await reply_markdown(bot, chat_id, e.user_message)
        return

    try:
        await send_result(bot, chat_id, result)
    except TelegramError as e:
        logger.error(f"Could not deliver result to chat {chat_id}: {e}")
        await bot.send_message(chat_id=chat_id, text=DELIVERY_FAILED_TEXT)


async def start_bulk(bot, chat_id: int, services: BotServices, user_id, raw_text: str):
    try:
        prompts = split_prompts(raw_text)
        if services.bulk_runs.is_running(user_id):
            raise BulkAlreadyRunning()
    except BotError as e:
        await reply_markdown(bot, chat_id, e.user_message)
        return

    # The whole run uses the model chosen when it started.
    model_key = services.sessions.get(user_id).selected_model
    await services.sessions.begin_bulk(user_id, prompts)
    logger.info(f"User {user_id}: starting bulk run of {len(prompts)} prompts with {model_key}")

    async def run_prompt(prompt: str):
        async with services.sessions.lock(user_id):
            await process_prompt(bot, chat_id, services, user_id, prompt, model_key=model_key)
            await services.sessions.advance_bulk(user_id)

    async def notify(text: str):
        await reply_markdown(bot, chat_id, text)

    async def job(cancelled):
        try:
            await services.sequencer.run(prompts, run_prompt, notify, cancelled)
        finally:
            await services.sessions.end_bulk(user_id)

    services.bulk_runs.start(user_id, job)


# --- Telegram Handlers ---

async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat_id = update.effective_chat.id
    session = services.sessions.get(update.effective_user.id)
    await update_user_commands(context, chat_id, session)

    if not session.api_key:
        await reply_markdown(context.bot, chat_id, WELCOME_TEXT)
    else:
        await context.bot.send_message(chat_id=chat_id, text="🔁 Session resumed")
        await show_category_selection(context.bot, chat_id)


async def switch_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat_id = update.effective_chat.id
    if not services.sessions.get(update.effective_user.id).api_key:
        await reply_markdown(context.bot, chat_id, "🔒 *API key required*")
    else:
        await show_category_selection(context.bot, chat_id)


async def remove_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    user_id = update.effective_user.id
    chat_id = update.effective_chat.id
    async with services.sessions.lock(user_id):
        services.bulk_runs.cancel(user_id)
        session = await services.sessions.clear_credentials(user_id)
    await reply_markdown(context.bot, chat_id, "🗑 *Session cleared*")
    await update_user_commands(context, chat_id, session)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    text = HELP_TEXT + (IMPLICIT_BULK_HELP if services.implicit_bulk else "")
    await reply_markdown(context.bot, update.effective_chat.id, text)


async def bulk_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    user_id = update.effective_user.id
    chat_id = update.effective_chat.id
    async with services.sessions.lock(user_id):
        session = services.sessions.get(user_id)
        if not session.api_key or not session.selected_model:
            await context.bot.send_message(
                chat_id=chat_id, text="⚠️ Please set your API key and model first using /start and /switch."
            )
            return
        if services.bulk_runs.is_running(user_id):
            await reply_markdown(context.bot, chat_id, BulkAlreadyRunning.user_message)
            return
        await services.sessions.set_bulk_awaiting(user_id, True)
    await reply_markdown(context.bot, chat_id, BULK_MODE_TEXT)


async def handle_text_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    user_id = update.effective_user.id
    chat_id = update.effective_chat.id
    text = update.effective_message.text
    bot = context.bot

    async with services.sessions.lock(user_id):
        session = services.sessions.get(user_id)
        route = route_text(session, text, services.implicit_bulk)

        if route == TextRoute.CAPTURE_API_KEY:
            session = await services.sessions.set_api_key(user_id, text)
            await reply_markdown(bot, chat_id, "✅ *API key saved!*")
            await show_category_selection(bot, chat_id)
            await update_user_commands(context, chat_id, session)
        elif route == TextRoute.BULK_INPUT:
            await services.sessions.set_bulk_awaiting(user_id, False)
            await start_bulk(bot, chat_id, services, user_id, text)
        elif route == TextRoute.NEED_MODEL:
            await reply_markdown(bot, chat_id, "⚠️ *Please select a model first using /switch*")
        elif route == TextRoute.IMPLICIT_BULK:
            await start_bulk(bot, chat_id, services, user_id, text)
        else:
            await process_prompt(bot, chat_id, services, user_id, text)


async def button_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    services = get_services(context)
    user_id = update.effective_user.id
    chat_id = update.effective_chat.id
    bot = context.bot

    try:
        action = parse_callback(query.data)
    except InvalidCallback as e:
        logger.warning(f"Malformed callback data from user {user_id}: {query.data!r}")
        await bot.send_message(chat_id=chat_id, text=e.user_message)
        return

    if isinstance(action, SwitchModel):
        await show_category_selection(bot, chat_id)
    elif isinstance(action, SelectCategory):
        await show_model_selection(bot, chat_id, action.category)
    elif isinstance(action, SelectModel):
        model = get_model(action.model_key)
        if model is None:
            logger.warning(f"User {user_id} selected unknown model {action.model_key!r}")
            await reply_markdown(bot, chat_id, UnknownModel.user_message)
            return
        async with services.sessions.lock(user_id):
            session = await services.sessions.set_selected_model(user_id, model.key)
        await bot.send_message(chat_id=chat_id, text=f"🎯 Selected: {model.display_name}")
        await update_user_commands(context, chat_id, session)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Unhandled error while processing an update", exc_info=context.error)


async def post_init(application: Application):
    """Sets generic bot commands for the global scope (new users)."""
    commands = [
        BotCommand("start", "Start bot"),
        BotCommand("switch", "Change model"),
        BotCommand("bulk", "Submit multiple prompts"),
        BotCommand("remove", "Remove API key"),
        BotCommand("help", "Show help"),
    ]
    await application.bot.set_my_commands(commands)

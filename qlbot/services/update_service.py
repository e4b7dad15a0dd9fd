"""Entry point for one inbound event: authorize, route, render failures."""

from typing import Awaitable, Callable

from qlbot.logging_config import bind_logger, get_logger
from qlbot.schemas.events import CallbackEvent, InboundEvent, MessageEvent
from qlbot.services.bot_context import BotContext
from qlbot.services.callback_handlers import dispatcher
from qlbot.services.errors import QinglongError
from qlbot.services.input_handlers import handle_pending_input
from qlbot.services.interaction import Interaction
from qlbot.services.keyboards import (
    MAIN_MENU,
    MENU_DEPS,
    MENU_ENVS,
    MENU_HELP,
    MENU_SCRIPTS,
    MENU_SUBS,
    MENU_TASKS,
)
from qlbot.services.resource_views import (
    deps_menu_screen,
    envs_screen,
    esc,
    scripts_screen,
    subs_screen,
    tasks_screen,
)
from qlbot.services.script_upload import handle_document, handle_script_url, looks_like_script_url

logger = get_logger("update_service")

PROCESSING_NOTICE = "⏳ Processing..."

WELCOME_TEXT = (
    "🐉 <b>Qinglong panel bot</b>\n\n"
    "• Token caching\n"
    "• Per-chat data caching\n"
    "• Parallel requests\n\n"
    "Pick an option or use a command\n\n"
    "💡 Forward a script file to add it to the panel"
)

HELP_TEXT = (
    "🐉 <b>Qinglong panel bot help</b>\n\n"
    "/tasks - 📋 Tasks\n"
    "/envs - 🔑 Environment variables\n"
    "/subs - 📦 Subscriptions\n"
    "/deps - 📚 Dependencies\n"
    "/scripts - 📁 Scripts\n"
    "/clearcache - 🗑️ Clear cache\n\n"
    "<b>📤 Adding scripts:</b>\n"
    "1. Forward a .js/.py/.sh/.ts file\n"
    "2. Send a GitHub/Gitee file link\n"
    "3. Send a direct link ending in .js etc.\n\n"
    "💡 GitHub blob links are converted to raw links\n"
    "⚡ Data is cached for faster replies"
)

Command = Callable[[Interaction], Awaitable[None]]


async def cmd_start(it: Interaction) -> None:
    await it.reply(WELCOME_TEXT, MAIN_MENU)


async def cmd_help(it: Interaction) -> None:
    await it.reply(HELP_TEXT)


async def cmd_tasks(it: Interaction) -> None:
    await it.render(await tasks_screen(it.panel, 0))


async def cmd_envs(it: Interaction) -> None:
    await it.render(await envs_screen(it.panel, 0))


async def cmd_subs(it: Interaction) -> None:
    await it.render(await subs_screen(it.panel, 0))


async def cmd_deps(it: Interaction) -> None:
    await it.render(await deps_menu_screen(it.panel))


async def cmd_scripts(it: Interaction) -> None:
    await it.render(await scripts_screen(it.panel, "", 0))


async def cmd_cancel(it: Interaction) -> None:
    await it.bot.states.clear(it.user_id)
    await it.reply("❌ Cancelled")


async def cmd_clear_cache(it: Interaction) -> None:
    await it.panel.invalidate("")
    await it.reply("✅ Cache cleared")


COMMANDS: dict[str, Command] = {
    "/start": cmd_start,
    "/help": cmd_help,
    "/tasks": cmd_tasks,
    "/envs": cmd_envs,
    "/subs": cmd_subs,
    "/deps": cmd_deps,
    "/scripts": cmd_scripts,
    "/cancel": cmd_cancel,
    "/clearcache": cmd_clear_cache,
}

MENU_BUTTONS: list[tuple[str, Command]] = [
    (MENU_TASKS, cmd_tasks),
    (MENU_ENVS, cmd_envs),
    (MENU_SUBS, cmd_subs),
    (MENU_DEPS, cmd_deps),
    (MENU_SCRIPTS, cmd_scripts),
]


def match_menu_button(text: str):
    """Reply-keyboard buttons, matched on their caption without the emoji."""
    for caption, command in MENU_BUTTONS:
        if caption.split(" ", 1)[-1] in text:
            return command
    if MENU_HELP.split(" ", 1)[-1] in text and len(text) < 10:
        return cmd_help
    return None


def match_command(text: str):
    if not text.startswith("/"):
        return None
    return COMMANDS.get(text.split(" ", 1)[0].split("@", 1)[0])


async def handle_callback(bot: BotContext, event: CallbackEvent) -> None:
    await bot.telegram.answer_callback_query(event.interaction_id, PROCESSING_NOTICE)
    it = Interaction(bot, event.user_id, event.chat_id, event.message_id)
    await dispatcher.dispatch(event.data, it)


async def handle_message(bot: BotContext, event: MessageEvent) -> None:
    it = Interaction(bot, event.user_id, event.chat_id)
    text = event.text

    state = await bot.states.get(event.user_id)
    if state is not None:
        await handle_pending_input(it, state, text)
        return

    if event.document is not None:
        await handle_document(it, event.document)
        return

    if looks_like_script_url(text):
        await handle_script_url(it, text)
        return

    command = match_menu_button(text) or match_command(text)
    if command is None:
        logger.debug(f"No handler matched for: {text}")
        return
    await command(it)


async def process_update(bot: BotContext, event: InboundEvent) -> None:
    log = bind_logger("update_service", user_id=event.user_id, chat_id=event.chat_id)

    if not bot.settings.is_user_allowed(event.user_id):
        log.warning("Unauthorized user")
        await bot.telegram.send_message(event.chat_id, f"⛔ Unauthorized user ID: <code>{event.user_id}</code>")
        return

    try:
        if isinstance(event, CallbackEvent):
            log.info(f"Callback: {event.data}")
            await handle_callback(bot, event)
        else:
            log.info("Message received", context={"has_document": event.document is not None})
            await handle_message(bot, event)
    except QinglongError as e:
        log.warning(f"Update failed: {e.message}", context={"error_type": e.__class__.__name__})
        await _report_failure(bot, event, e.message)
    except Exception as e:
        log.error(f"Update processing error: {e}", exc_info=True)
        await _report_failure(bot, event, str(e))


async def _report_failure(bot: BotContext, event: InboundEvent, message: str) -> None:
    if await bot.states.clear(event.user_id):
        logger.info("Pending action dropped after failure", extra={"context": {"user_id": event.user_id}})
    await bot.telegram.send_message(event.chat_id, f"❌ Error: {esc(message)}")

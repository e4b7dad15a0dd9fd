"""Consumers of the free-text reply a pending action is waiting for.

A reply that does not parse keeps the pending action so the user can retry.
Missing context (the subscription vanished, an unknown dependency type) ends
the conversation here; panel failures propagate and the update processor
ends it.
"""

from typing import Awaitable, Callable

from qlbot.logging_config import get_logger
from qlbot.services import gateway as gw
from qlbot.services.conversation_state import ConversationState, PendingAction, is_cancel
from qlbot.services.errors import ValidationFailed
from qlbot.services.input_parsers import (
    parse_dependency_names,
    parse_env,
    parse_schedule,
    parse_subscription,
    parse_subscription_patch,
    parse_task,
)
from qlbot.services.interaction import Interaction
from qlbot.services.panel_api import DependencyType
from qlbot.services.resource_views import (
    dep_list_screen,
    env_detail_screen,
    envs_screen,
    esc,
    find_by_id,
    scripts_screen,
    sub_detail_screen,
    subs_screen,
    task_detail_screen,
    tasks_screen,
)

logger = get_logger("input_handlers")

InputHandler = Callable[[Interaction, ConversationState, str], Awaitable[None]]


async def _finish(it: Interaction) -> None:
    await it.bot.states.clear(it.user_id)


async def edit_task_schedule(it: Interaction, state: ConversationState, text: str) -> None:
    schedule = parse_schedule(text)
    panel = it.panel
    gw.ensure_ok(await panel.update_task_schedule(state.resource_id, schedule), "Update failed")
    await _finish(it)
    await it.reply(f"✅ Schedule updated to <code>{esc(schedule)}</code>")
    await it.render(await task_detail_screen(panel, state.resource_id), state.message_id)


async def create_task(it: Interaction, state: ConversationState, text: str) -> None:
    task = parse_task(text)
    panel = it.panel
    gw.ensure_ok(await panel.create_task(task.name, task.command, task.schedule), "Create failed")
    await _finish(it)
    await it.reply(
        "✅ <b>Task created</b>\n\n"
        f"Name: <code>{esc(task.name)}</code>\n"
        f"Command: <code>{esc(task.command)}</code>\n"
        f"Schedule: <code>{esc(task.schedule)}</code>"
    )
    await it.render(await tasks_screen(panel, 0))


async def schedule_uploaded_file(it: Interaction, state: ConversationState, text: str) -> None:
    schedule = parse_schedule(text, default_aliases=("default",))
    gw.ensure_ok(
        await it.panel.create_task(state.file_name, f"task {state.file_name}", schedule), "Create failed"
    )
    await _finish(it)
    await it.reply(
        "✅ <b>Task created</b>\n\n"
        f"Name: <code>{esc(state.file_name)}</code>\n"
        f"Schedule: <code>{esc(schedule)}</code>"
    )


async def schedule_script(it: Interaction, state: ConversationState, text: str) -> None:
    schedule = parse_schedule(text, default_aliases=("d", "default"))
    panel = it.panel
    gw.ensure_ok(await panel.create_task(state.file_name, f"task {state.path}", schedule), "Create failed")
    await _finish(it)
    await it.reply(
        "✅ <b>Added to run list</b>\n\n"
        f"Script: <code>{esc(state.file_name)}</code>\n"
        f"Schedule: <code>{esc(schedule)}</code>"
    )
    await it.render(await scripts_screen(panel, "", 0))


async def add_env(it: Interaction, state: ConversationState, text: str) -> None:
    env = parse_env(text)
    panel = it.panel
    gw.ensure_ok(await panel.create_env(env.name, env.value), "Add failed")
    await _finish(it)
    await it.reply(
        "✅ <b>Variable added</b>\n\n"
        f"Name: <code>{esc(env.name)}</code>\n"
        f"Value: <code>{esc(env.value)}</code>"
    )
    await it.render(await envs_screen(panel, 0))


async def edit_env(it: Interaction, state: ConversationState, text: str) -> None:
    env = parse_env(text)
    panel = it.panel
    gw.ensure_ok(await panel.update_env(state.resource_id, env.name, env.value), "Update failed")
    await _finish(it)
    await it.reply(
        "✅ <b>Variable updated</b>\n\n"
        f"Name: <code>{esc(env.name)}</code>\n"
        f"Value: <code>{esc(env.value)}</code>"
    )
    await it.render(await env_detail_screen(panel, state.resource_id), state.message_id)


async def add_subscription(it: Interaction, state: ConversationState, text: str) -> None:
    sub = parse_subscription(text)
    panel = it.panel
    gw.ensure_ok(await panel.create_subscription(sub.name, sub.url, sub.schedule, sub.branch), "Add failed")
    await _finish(it)
    await it.reply(
        "✅ <b>Subscription added</b>\n\n"
        f"Name: <code>{esc(sub.name)}</code>\n"
        f"Schedule: <code>{esc(sub.schedule)}</code>"
    )
    await it.render(await subs_screen(panel, 0))


async def edit_subscription(it: Interaction, state: ConversationState, text: str) -> None:
    patch = parse_subscription_patch(text)
    panel = it.panel
    current = find_by_id(gw.to_array(await panel.list_subscriptions()), state.resource_id)
    if current is None:
        await _finish(it)
        await it.reply("❌ Subscription not found")
        return

    gw.ensure_ok(await panel.update_subscription(patch.apply(current)), "Update failed")
    await _finish(it)
    await it.reply("✅ <b>Subscription updated</b>")
    await it.render(await sub_detail_screen(panel, state.resource_id), state.message_id)


async def add_dependency(it: Interaction, state: ConversationState, text: str) -> None:
    try:
        dep_type = DependencyType(state.dep_type)
    except ValueError:
        await _finish(it)
        await it.reply("❌ Unknown dependency type")
        return

    names = parse_dependency_names(text)
    panel = it.panel
    gw.ensure_ok(await panel.add_dependencies(dep_type, names), "Add failed")
    await _finish(it)
    await it.reply(f"✅ <b>Dependencies added</b>\n\n{len(names)} queued for install")
    await it.render(await dep_list_screen(panel, dep_type, 0), state.message_id)


INPUT_HANDLERS: dict[PendingAction, InputHandler] = {
    PendingAction.EDIT_TASK_SCHEDULE: edit_task_schedule,
    PendingAction.CREATE_TASK: create_task,
    PendingAction.SCHEDULE_UPLOADED_FILE: schedule_uploaded_file,
    PendingAction.SCHEDULE_SCRIPT: schedule_script,
    PendingAction.ADD_ENV: add_env,
    PendingAction.EDIT_ENV: edit_env,
    PendingAction.ADD_SUBSCRIPTION: add_subscription,
    PendingAction.EDIT_SUBSCRIPTION: edit_subscription,
    PendingAction.ADD_DEPENDENCY: add_dependency,
}


async def handle_pending_input(it: Interaction, state: ConversationState, text: str) -> None:
    if is_cancel(text):
        await it.bot.states.clear(it.user_id)
        await it.reply("❌ Cancelled")
        return

    handler = INPUT_HANDLERS[state.pending_action]
    try:
        await handler(it, state, text)
    except ValidationFailed as e:
        logger.info(
            "Rejected input for pending action",
            extra={"context": {"user_id": it.user_id, "pending_action": state.pending_action.value}},
        )
        hint = f"\nFormat: <code>{esc(e.expected_format)}</code>" if e.expected_format else ""
        await it.reply(f"❌ {esc(e.message)}{hint}\n\n/cancel to abort")

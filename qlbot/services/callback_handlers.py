"""Inline button handlers, registered by (verb, resource kind).

Mutations go through PanelApi, whose gateway invalidates the resource class
before the downstream call, so the screen rendered afterwards is re-fetched.
"""

from qlbot.logging_config import get_logger
from qlbot.services import gateway as gw
from qlbot.services.action_codec import Action, ResourceKind, Verb
from qlbot.services.conversation_state import PendingAction
from qlbot.services.dispatcher import Dispatcher
from qlbot.services.interaction import Interaction
from qlbot.services.resource_views import (
    DEPENDENCY_LABELS,
    dep_list_screen,
    deps_menu_screen,
    env_detail_screen,
    envs_screen,
    esc,
    resolve_folder,
    resolve_script_path,
    scripts_screen,
    sub_detail_screen,
    subs_screen,
    task_detail_screen,
    task_log_screen,
    tasks_screen,
)

logger = get_logger("callback_handlers")

dispatcher = Dispatcher()

TASK = ResourceKind.TASK
ENV = ResourceKind.ENV
SUB = ResourceKind.SUBSCRIPTION
DEP = ResourceKind.DEPENDENCY
SCRIPT = ResourceKind.SCRIPT

CANCEL_HINT = "\n\n/cancel to abort"

_TASK_ACTIONS = {Verb.RUN: "run", Verb.STOP: "stop", Verb.ENABLE: "enable", Verb.DISABLE: "disable"}
_ENV_ACTIONS = {Verb.ENABLE: "enable", Verb.DISABLE: "disable"}
_SUB_ACTIONS = {Verb.RUN: "run", Verb.ENABLE: "enable", Verb.DISABLE: "disable"}


# === TASKS ===


@dispatcher.route(Verb.LIST, TASK)
async def list_tasks(it: Interaction, action: Action) -> None:
    await it.render(await tasks_screen(it.panel, action.page))


@dispatcher.route(Verb.REFRESH, TASK)
async def refresh_tasks(it: Interaction, action: Action) -> None:
    panel = it.panel
    await panel.invalidate(gw.TASKS)
    await it.render(await tasks_screen(panel, action.page))


@dispatcher.route(Verb.SHOW, TASK)
async def show_task(it: Interaction, action: Action) -> None:
    await it.render(await task_detail_screen(it.panel, action.id))


@dispatcher.route(Verb.RUN, TASK)
@dispatcher.route(Verb.STOP, TASK)
@dispatcher.route(Verb.ENABLE, TASK)
@dispatcher.route(Verb.DISABLE, TASK)
async def toggle_task(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.task_action(_TASK_ACTIONS[action.verb], action.id))
    await it.render(await task_detail_screen(panel, action.id))


@dispatcher.route(Verb.DELETE, TASK)
async def delete_task(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.delete_task(action.id))
    await it.render(await tasks_screen(panel, 0))


@dispatcher.route(Verb.LOG, TASK)
async def show_task_log(it: Interaction, action: Action) -> None:
    await it.render(await task_log_screen(it.panel, action.id))


@dispatcher.route(Verb.CREATE, TASK)
async def prompt_new_task(it: Interaction, action: Action) -> None:
    await it.prompt(
        PendingAction.CREATE_TASK,
        "➕ <b>New task</b>\n\nFormat: <code>name|command|schedule</code>\n"
        "Example: <code>Test|task test.js|0 8 * * *</code>" + CANCEL_HINT,
        Action(Verb.LIST, TASK),
    )


@dispatcher.route(Verb.EDIT, TASK)
async def prompt_task_schedule(it: Interaction, action: Action) -> None:
    await it.prompt(
        PendingAction.EDIT_TASK_SCHEDULE,
        "✏️ <b>Edit schedule</b>\n\nEnter a new cron expression\nExample: <code>0 8 * * *</code>" + CANCEL_HINT,
        Action(Verb.LIST, TASK),
        resource_id=action.id,
    )


@dispatcher.route(Verb.SCHEDULE, TASK)
async def prompt_uploaded_file_schedule(it: Interaction, action: Action) -> None:
    # Uploads land in the scripts root, so a truncated name resolves there
    file_name = resolve_script_path(await _script_tree(it), action)
    await it.prompt(
        PendingAction.SCHEDULE_UPLOADED_FILE,
        f"⏰ Schedule for <b>{esc(file_name)}</b>\n\nEnter a cron expression\n"
        "or <code>default</code> for daily at midnight" + CANCEL_HINT,
        as_new_message=True,
        file_name=file_name,
    )


# === ENVS ===


@dispatcher.route(Verb.LIST, ENV)
async def list_envs(it: Interaction, action: Action) -> None:
    await it.render(await envs_screen(it.panel, action.page))


@dispatcher.route(Verb.REFRESH, ENV)
async def refresh_envs(it: Interaction, action: Action) -> None:
    panel = it.panel
    await panel.invalidate(gw.ENVS)
    await it.render(await envs_screen(panel, action.page))


@dispatcher.route(Verb.SHOW, ENV)
async def show_env(it: Interaction, action: Action) -> None:
    await it.render(await env_detail_screen(it.panel, action.id))


@dispatcher.route(Verb.ENABLE, ENV)
@dispatcher.route(Verb.DISABLE, ENV)
async def toggle_env(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.env_action(_ENV_ACTIONS[action.verb], action.id))
    await it.render(await env_detail_screen(panel, action.id))


@dispatcher.route(Verb.DELETE, ENV)
async def delete_env(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.delete_env(action.id))
    await it.render(await envs_screen(panel, 0))


@dispatcher.route(Verb.CREATE, ENV)
async def prompt_new_env(it: Interaction, action: Action) -> None:
    await it.prompt(
        PendingAction.ADD_ENV,
        "➕ <b>Add variable</b>\n\nFormat: <code>NAME=value</code>" + CANCEL_HINT,
        Action(Verb.LIST, ENV),
    )


@dispatcher.route(Verb.EDIT, ENV)
async def prompt_env_edit(it: Interaction, action: Action) -> None:
    await it.prompt(
        PendingAction.EDIT_ENV,
        "✏️ <b>Edit variable</b>\n\nFormat: <code>NAME=value</code>" + CANCEL_HINT,
        Action(Verb.SHOW, ENV, id=action.id),
        resource_id=action.id,
    )


# === SUBSCRIPTIONS ===


@dispatcher.route(Verb.LIST, SUB)
async def list_subscriptions(it: Interaction, action: Action) -> None:
    await it.render(await subs_screen(it.panel, action.page))


@dispatcher.route(Verb.REFRESH, SUB)
async def refresh_subscriptions(it: Interaction, action: Action) -> None:
    panel = it.panel
    await panel.invalidate(gw.SUBS)
    await it.render(await subs_screen(panel, action.page))


@dispatcher.route(Verb.SHOW, SUB)
async def show_subscription(it: Interaction, action: Action) -> None:
    await it.render(await sub_detail_screen(it.panel, action.id))


@dispatcher.route(Verb.RUN, SUB)
@dispatcher.route(Verb.ENABLE, SUB)
@dispatcher.route(Verb.DISABLE, SUB)
async def toggle_subscription(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.subscription_action(_SUB_ACTIONS[action.verb], action.id))
    await it.render(await sub_detail_screen(panel, action.id))


@dispatcher.route(Verb.DELETE, SUB)
async def delete_subscription(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.delete_subscription(action.id))
    await it.render(await subs_screen(panel, 0))


@dispatcher.route(Verb.CREATE, SUB)
async def prompt_new_subscription(it: Interaction, action: Action) -> None:
    await it.prompt(
        PendingAction.ADD_SUBSCRIPTION,
        "➕ <b>Add subscription</b>\n\nFormat: <code>name|url|schedule|branch</code>\n"
        "Example: <code>Repo|https://github.com/x/y|0 0 * * *|main</code>" + CANCEL_HINT,
        Action(Verb.LIST, SUB),
    )


@dispatcher.route(Verb.EDIT, SUB)
async def prompt_subscription_edit(it: Interaction, action: Action) -> None:
    await it.prompt(
        PendingAction.EDIT_SUBSCRIPTION,
        "✏️ <b>Edit subscription</b>\n\nFormat: <code>name|url|schedule|branch</code>\n"
        "Leave a field empty to keep it: <code>||0 8 * * *|</code>" + CANCEL_HINT,
        Action(Verb.SHOW, SUB, id=action.id),
        resource_id=action.id,
    )


# === DEPENDENCIES ===


@dispatcher.route(Verb.LIST, DEP)
async def list_dependencies(it: Interaction, action: Action) -> None:
    if action.dep_type is None:
        await it.render(await deps_menu_screen(it.panel))
        return
    await it.render(await dep_list_screen(it.panel, action.dep_type, action.page))


@dispatcher.route(Verb.REFRESH, DEP)
async def refresh_dependencies(it: Interaction, action: Action) -> None:
    panel = it.panel
    if action.dep_type is None:
        await panel.invalidate(gw.DEPS)
        await it.render(await deps_menu_screen(panel))
        return
    await panel.invalidate(gw.cache_key(gw.DEPS, action.dep_type.value))
    await it.render(await dep_list_screen(panel, action.dep_type, 0))


@dispatcher.route(Verb.REINSTALL, DEP)
async def reinstall_dependency(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.reinstall_dependency(action.id, action.dep_type))
    await it.render(await dep_list_screen(panel, action.dep_type, 0))


@dispatcher.route(Verb.DELETE, DEP)
async def delete_dependency(it: Interaction, action: Action) -> None:
    panel = it.panel
    gw.ensure_ok(await panel.delete_dependency(action.id, action.dep_type))
    await it.render(await dep_list_screen(panel, action.dep_type, 0))


@dispatcher.route(Verb.CREATE, DEP)
async def prompt_new_dependency(it: Interaction, action: Action) -> None:
    type_name = DEPENDENCY_LABELS[action.dep_type].split(" ", 1)[-1]
    await it.prompt(
        PendingAction.ADD_DEPENDENCY,
        f"➕ <b>Add {type_name} dependency</b>\n\nEnter package names separated by spaces" + CANCEL_HINT,
        Action(Verb.LIST, DEP, dep_type=action.dep_type),
        dep_type=action.dep_type.value,
    )


# === SCRIPTS ===


async def _script_tree(it: Interaction) -> list:
    result = gw.ensure_ok(await it.panel.script_tree(), "Failed to load scripts")
    return result.get("data") or []


@dispatcher.route(Verb.LIST, SCRIPT)
async def list_scripts(it: Interaction, action: Action) -> None:
    folder = resolve_folder(await _script_tree(it), action) if action.path else ""
    await it.render(await scripts_screen(it.panel, folder, action.page))


@dispatcher.route(Verb.REFRESH, SCRIPT)
async def refresh_scripts(it: Interaction, action: Action) -> None:
    await it.panel.invalidate(gw.SCRIPTS)
    folder = resolve_folder(await _script_tree(it), action) if action.path else ""
    await it.render(await scripts_screen(it.panel, folder, 0))


@dispatcher.route(Verb.SCHEDULE, SCRIPT)
async def prompt_script_schedule(it: Interaction, action: Action) -> None:
    path = resolve_script_path(await _script_tree(it), action)
    filename = path.rsplit("/", 1)[-1]
    await it.prompt(
        PendingAction.SCHEDULE_SCRIPT,
        f"⏰ <b>Add to run list</b>\n\nScript: <code>{esc(filename)}</code>\n\n"
        "Enter a cron expression\nExample: <code>0 8 * * *</code> (daily at 8:00)\n"
        "or <code>d</code> for daily at midnight" + CANCEL_HINT,
        Action(Verb.LIST, SCRIPT),
        file_name=filename,
        path=path,
    )


@dispatcher.route(Verb.DELETE, SCRIPT)
async def delete_script(it: Interaction, action: Action) -> None:
    panel = it.panel
    path = resolve_script_path(await _script_tree(it), action)
    directory, _, filename = path.rpartition("/")
    gw.ensure_ok(await panel.delete_script(filename, directory))
    logger.info(f"Script deleted: {path}", extra={"context": {"chat_id": it.chat_id}})
    await it.render(await scripts_screen(panel, directory, 0))

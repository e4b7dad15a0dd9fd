"""Screens (text + inline keyboard) for the five panel resource families.

Views only read through PanelApi, so they are served from the chat's cache
whenever it is warm.
"""

import asyncio
import html
from dataclasses import dataclass, replace
from typing import Any, Optional

from qlbot.services.action_codec import Action, ResourceKind, Verb, encode
from qlbot.services.errors import UnresolvedScriptPath
from qlbot.services.gateway import is_success, to_array
from qlbot.services.keyboards import back_to_list, button, inline, label, nav_row, page_window, single
from qlbot.services.panel_api import DependencyType, PanelApi
from qlbot.services.telegram_service import TelegramService

TASKS_PAGE_SIZE = 8
ENVS_PAGE_SIZE = 8
SUBS_PAGE_SIZE = 8
DEPS_PAGE_SIZE = 6
SCRIPTS_PAGE_SIZE = 5
LOG_TAIL_CHARS = 3000
NAME_WIDTH = 22

TASK = ResourceKind.TASK
ENV = ResourceKind.ENV
SUB = ResourceKind.SUBSCRIPTION
DEP = ResourceKind.DEPENDENCY
SCRIPT = ResourceKind.SCRIPT

DEPENDENCY_LABELS = {
    DependencyType.PYTHON3: "🐍 Python",
    DependencyType.NODEJS: "📦 Node.js",
    DependencyType.LINUX: "🐧 Linux",
}


@dataclass(frozen=True)
class Screen:
    text: str
    markup: Optional[dict] = None


async def show(telegram: TelegramService, chat_id: int, message_id: Optional[int], screen: Screen) -> dict:
    """Edit the message the button lives on, or send a new one for commands."""
    if message_id:
        return await telegram.edit_message(chat_id, message_id, screen.text, reply_markup=screen.markup)
    return await telegram.send_message(chat_id, screen.text, reply_markup=screen.markup)


def esc(value: Any) -> str:
    return html.escape(str(value), quote=False)


def _name(item: dict, width: int = NAME_WIDTH, fallback: str = "Unnamed") -> str:
    return str(item.get("name") or fallback)[:width]


def find_by_id(items: list, item_id: str) -> Optional[dict]:
    for item in items:
        if str(item.get("id")) == str(item_id):
            return item
    return None


# === TASKS ===


def _task_icon(task: dict) -> str:
    if task.get("isDisabled"):
        return "🔕"
    return "🏃" if task.get("isRunning") else "✅"


async def tasks_screen(panel: PanelApi, page: int = 0) -> Screen:
    tasks = to_array(await panel.list_tasks())
    if not tasks:
        return Screen("📋 <b>Tasks</b>\n\nNo tasks yet", single("➕ New task", Action(Verb.CREATE, TASK)))

    page, total_pages, start, end = page_window(len(tasks), page, TASKS_PAGE_SIZE)
    rows = [
        [button(f"{_task_icon(task)} {_name(task)}", Action(Verb.SHOW, TASK, id=str(task["id"])))]
        for task in tasks[start:end]
    ]
    rows.append(nav_row(page, total_pages, lambda p: Action(Verb.LIST, TASK, page=p)))
    rows.append(
        [
            button("🔄 Refresh", Action(Verb.REFRESH, TASK, page=page)),
            button("➕ New", Action(Verb.CREATE, TASK)),
        ]
    )

    running = sum(1 for task in tasks if task.get("isRunning"))
    enabled = sum(1 for task in tasks if not task.get("isDisabled"))
    text = f"📋 <b>Tasks</b>\n\n{len(tasks)} total | ✅{enabled} 🏃{running} 🔕{len(tasks) - enabled}"
    return Screen(text, inline(rows))


async def task_detail_screen(panel: PanelApi, task_id: str) -> Screen:
    result = await panel.get_task(task_id)
    task = result.get("data") if is_success(result) else None
    if not task:
        return Screen("❌ Task not found", inline([back_to_list(TASK, "⬅️ Back")]))

    if task.get("isDisabled"):
        status = "🔕 Disabled"
    else:
        status = "🏃 Running" if task.get("isRunning") else "✅ Enabled"
    text = (
        f"📋 <b>{esc(task.get('name') or 'Unnamed')}</b>\n\n"
        f"Status: {status}\n"
        f"Schedule: <code>{esc(task.get('schedule') or 'none')}</code>\n"
        f"Command: <code>{esc(task.get('command') or 'none')}</code>"
    )

    rows = []
    if task.get("isRunning"):
        rows.append([button("⏹️ Stop", Action(Verb.STOP, TASK, id=task_id))])
    else:
        rows.append([button("▶️ Run", Action(Verb.RUN, TASK, id=task_id))])
    toggle = (
        button("✅ Enable", Action(Verb.ENABLE, TASK, id=task_id))
        if task.get("isDisabled")
        else button("🔕 Disable", Action(Verb.DISABLE, TASK, id=task_id))
    )
    rows.append([toggle, button("✏️ Edit schedule", Action(Verb.EDIT, TASK, id=task_id))])
    rows.append(
        [
            button("📄 Log", Action(Verb.LOG, TASK, id=task_id)),
            button("🗑️ Delete", Action(Verb.DELETE, TASK, id=task_id)),
        ]
    )
    rows.append(back_to_list(TASK))
    return Screen(text, inline(rows))


async def task_log_screen(panel: PanelApi, task_id: str) -> Screen:
    task_result, log_result = await asyncio.gather(panel.get_task(task_id), panel.task_log(task_id))

    if is_success(log_result):
        content = str(log_result.get("data") or "No log yet")
    else:
        content = "Failed to fetch log"
    if len(content) > LOG_TAIL_CHARS:
        content = "...(truncated)\n" + content[-LOG_TAIL_CHARS:]

    task = task_result.get("data") if is_success(task_result) else None
    name = (task or {}).get("name") or "Task"
    text = f"📄 <b>{esc(name)}</b> log\n\n<pre>{esc(content)}</pre>"
    rows = [
        [
            button("🔄 Refresh", Action(Verb.LOG, TASK, id=task_id)),
            button("⬅️ Back", Action(Verb.SHOW, TASK, id=task_id)),
        ]
    ]
    return Screen(text, inline(rows))


# === ENVS ===


def _env_icon(item: dict) -> str:
    return "✅" if item.get("status") == 0 else "🔕"


async def envs_screen(panel: PanelApi, page: int = 0) -> Screen:
    envs = to_array(await panel.list_envs())
    if not envs:
        return Screen(
            "🔑 <b>Environment variables</b>\n\nNo variables yet",
            single("➕ Add variable", Action(Verb.CREATE, ENV)),
        )

    page, total_pages, start, end = page_window(len(envs), page, ENVS_PAGE_SIZE)
    rows = [
        [button(f"{_env_icon(item)} {_name(item)}", Action(Verb.SHOW, ENV, id=str(item["id"])))]
        for item in envs[start:end]
    ]
    rows.append(nav_row(page, total_pages, lambda p: Action(Verb.LIST, ENV, page=p)))
    rows.append(
        [
            button("➕ Add", Action(Verb.CREATE, ENV)),
            button("🔄 Refresh", Action(Verb.REFRESH, ENV, page=page)),
        ]
    )
    return Screen(f"🔑 <b>Environment variables</b>\n\n{len(envs)} total", inline(rows))


async def env_detail_screen(panel: PanelApi, env_id: str) -> Screen:
    item = find_by_id(to_array(await panel.list_envs()), env_id)
    if item is None:
        return Screen("❌ Variable not found", inline([back_to_list(ENV, "⬅️ Back")]))

    enabled = item.get("status") == 0
    text = (
        f"🔑 <b>{esc(item.get('name'))}</b>\n\n"
        f"Status: {'✅ Enabled' if enabled else '🔕 Disabled'}\n"
        f"Value: <code>{esc(item.get('value') or '')}</code>"
    )
    if item.get("remarks"):
        text += f"\nRemarks: {esc(item['remarks'])}"

    rows = [
        [
            button("🔕 Disable", Action(Verb.DISABLE, ENV, id=env_id))
            if enabled
            else button("✅ Enable", Action(Verb.ENABLE, ENV, id=env_id))
        ],
        [
            button("✏️ Edit", Action(Verb.EDIT, ENV, id=env_id)),
            button("🗑️ Delete", Action(Verb.DELETE, ENV, id=env_id)),
        ],
        back_to_list(ENV),
    ]
    return Screen(text, inline(rows))


# === SUBSCRIPTIONS ===


def _sub_icon(item: dict) -> str:
    return "🔕" if item.get("is_disabled") else "✅"


async def subs_screen(panel: PanelApi, page: int = 0) -> Screen:
    subs = to_array(await panel.list_subscriptions())
    if not subs:
        return Screen(
            "📦 <b>Subscriptions</b>\n\nNo subscriptions yet",
            single("➕ Add subscription", Action(Verb.CREATE, SUB)),
        )

    page, total_pages, start, end = page_window(len(subs), page, SUBS_PAGE_SIZE)
    rows = [
        [button(f"{_sub_icon(item)} {_name(item)}", Action(Verb.SHOW, SUB, id=str(item["id"])))]
        for item in subs[start:end]
    ]
    rows.append(nav_row(page, total_pages, lambda p: Action(Verb.LIST, SUB, page=p)))
    rows.append(
        [
            button("➕ Add", Action(Verb.CREATE, SUB)),
            button("🔄 Refresh", Action(Verb.REFRESH, SUB, page=page)),
        ]
    )
    return Screen(f"📦 <b>Subscriptions</b>\n\n{len(subs)} total", inline(rows))


async def sub_detail_screen(panel: PanelApi, sub_id: str) -> Screen:
    item = find_by_id(to_array(await panel.list_subscriptions()), sub_id)
    if item is None:
        return Screen("❌ Subscription not found", inline([back_to_list(SUB, "⬅️ Back")]))

    disabled = bool(item.get("is_disabled"))
    text = (
        f"📦 <b>{esc(item.get('name'))}</b>\n\n"
        f"Status: {'🔕 Disabled' if disabled else '✅ Enabled'}\n"
        f"Schedule: <code>{esc(item.get('schedule') or 'none')}</code>\n"
        f"URL: <code>{esc(item.get('url') or '')}</code>"
    )
    if item.get("branch"):
        text += f"\nBranch: {esc(item['branch'])}"

    rows = [
        [button("▶️ Run now", Action(Verb.RUN, SUB, id=sub_id))],
        [
            button("✅ Enable", Action(Verb.ENABLE, SUB, id=sub_id))
            if disabled
            else button("🔕 Disable", Action(Verb.DISABLE, SUB, id=sub_id))
        ],
        [
            button("✏️ Edit", Action(Verb.EDIT, SUB, id=sub_id)),
            button("🗑️ Delete", Action(Verb.DELETE, SUB, id=sub_id)),
        ],
        back_to_list(SUB),
    ]
    return Screen(text, inline(rows))


# === DEPENDENCIES ===


async def deps_menu_screen(panel: PanelApi) -> Screen:
    dep_types = list(DependencyType)
    results = await asyncio.gather(
        *(panel.list_dependencies(dep_type) for dep_type in dep_types), return_exceptions=True
    )
    counts = {
        dep_type: 0 if isinstance(result, BaseException) else len(to_array(result))
        for dep_type, result in zip(dep_types, results)
    }

    rows = [
        [button(f"{DEPENDENCY_LABELS[dep_type]} ({counts[dep_type]})", Action(Verb.LIST, DEP, dep_type=dep_type))]
        for dep_type in dep_types
    ]
    rows.append([button("🔄 Refresh", Action(Verb.REFRESH, DEP))])
    total = sum(counts.values())
    return Screen(f"📚 <b>Dependencies</b>\n\n{total} total\n\nPick a category for details", inline(rows))


def _dep_icon(dep: dict) -> str:
    return {0: "✅", 1: "⏳"}.get(dep.get("status"), "❌")


async def dep_list_screen(panel: PanelApi, dep_type: DependencyType, page: int = 0) -> Screen:
    deps = to_array(await panel.list_dependencies(dep_type))
    title = f"{DEPENDENCY_LABELS[dep_type]} <b>dependencies</b>"
    if not deps:
        rows = [
            [button("➕ Add dependency", Action(Verb.CREATE, DEP, dep_type=dep_type))],
            back_to_list(DEP, "⬅️ Back"),
        ]
        return Screen(f"{title}\n\nNo dependencies yet", inline(rows))

    page, total_pages, start, end = page_window(len(deps), page, DEPS_PAGE_SIZE)
    rows = []
    for dep in deps[start:end]:
        dep_id = str(dep["id"])
        rows.append(
            [
                label(f"{_dep_icon(dep)} {_name(dep, 14, 'Unknown')}"),
                button("🔄", Action(Verb.REINSTALL, DEP, id=dep_id, dep_type=dep_type)),
                button("🗑️", Action(Verb.DELETE, DEP, id=dep_id, dep_type=dep_type)),
            ]
        )
    rows.append(nav_row(page, total_pages, lambda p: Action(Verb.LIST, DEP, page=p, dep_type=dep_type)))
    rows.append(
        [
            button("➕ Add", Action(Verb.CREATE, DEP, dep_type=dep_type)),
            button("🔄 Refresh", Action(Verb.REFRESH, DEP, dep_type=dep_type)),
        ]
    )
    rows.append(back_to_list(DEP, "⬅️ Back to categories"))
    text = f"{title}\n\n{len(deps)} total\n\n✅ installed ⏳ installing ❌ failed"
    return Screen(text, inline(rows))


# === SCRIPTS ===


def find_node(items: list, title: str) -> Optional[dict]:
    """Depth-first search for the first node with the given title."""
    for item in items:
        if item.get("title") == title:
            return item
        found = find_node(item.get("children") or [], title)
        if found:
            return found
    return None


def split_entries(nodes: list) -> tuple[list[str], list[str]]:
    """(folders, files) directly under a tree level."""
    folders, files = [], []
    for node in nodes:
        if node.get("children"):
            folders.append(node["title"])
        elif node.get("title"):
            files.append(node["title"])
    return folders, files


def _script_paths(nodes: list, parent: str = ""):
    # Paths as rendered by scripts_screen: a file is addressed by its direct folder title
    for node in nodes:
        title = node.get("title")
        if not title:
            continue
        if node.get("children"):
            yield from _script_paths(node["children"], title)
        else:
            yield f"{parent}/{title}" if parent else title


def _folder_titles(nodes: list):
    for node in nodes:
        if node.get("children"):
            yield node["title"]
            yield from _folder_titles(node["children"])


def _resolve(candidates, action: Action) -> str:
    """The one candidate whose own button carries exactly the pressed callback data."""
    pressed = encode(action)
    matches = [path for path in dict.fromkeys(candidates) if encode(replace(action, path=path)) == pressed]
    if len(matches) != 1:
        raise UnresolvedScriptPath(action.path, matches)
    return matches[0]


def resolve_folder(tree: list, action: Action) -> str:
    """Expand a possibly truncated folder name from callback data; empty for the root."""
    if not action.path:
        return ""
    return _resolve(_folder_titles(tree), action)


def resolve_script_path(tree: list, action: Action) -> str:
    """Expand a possibly truncated script path from callback data."""
    return _resolve(_script_paths(tree), action)


async def scripts_screen(panel: PanelApi, folder: str = "", page: int = 0) -> Screen:
    result = await panel.script_tree()
    if not is_success(result):
        return Screen(f"❌ Failed to load scripts: {esc(result.get('message') or 'unknown error')}")

    tree = result.get("data") or []
    if folder:
        node = find_node(tree, folder)
        folders, files = split_entries((node or {}).get("children") or [])
    else:
        folders, files = split_entries(tree)

    rows = []
    if folder:
        rows.append([button("⬅️ Back to root", Action(Verb.LIST, SCRIPT))])
    for name in folders:
        rows.append([button(f"📂 {name[:28]}", Action(Verb.LIST, SCRIPT, path=name))])

    page, total_pages, start, end = page_window(len(files), page, SCRIPTS_PAGE_SIZE)
    for name in files[start:end]:
        display = name if len(name) <= 18 else name[:18] + ".."
        path = f"{folder}/{name}" if folder else name
        rows.append(
            [
                label(f"📄 {display}"),
                button("▶️", Action(Verb.SCHEDULE, SCRIPT, path=path)),
                button("🗑️", Action(Verb.DELETE, SCRIPT, path=path)),
            ]
        )
    if len(files) > SCRIPTS_PAGE_SIZE:
        rows.append(
            nav_row(
                page,
                total_pages,
                lambda p: Action(Verb.LIST, SCRIPT, page=p, path=folder or None),
                prev_text="⬅️ Prev",
                next_text="Next ➡️",
            )
        )
    rows.append([button("🔄 Refresh", Action(Verb.REFRESH, SCRIPT, path=folder or None))])

    text = f"📁 <b>Scripts - {esc(folder or 'root')}</b>\n\n📂 {len(folders)} folders | 📄 {len(files)} files"
    if len(files) > SCRIPTS_PAGE_SIZE:
        text += f"\n(page {page + 1}/{total_pages})"
    text += "\n\n▶️ add to run list | 🗑️ delete"
    return Screen(text, inline(rows))

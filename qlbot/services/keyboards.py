"""Telegram keyboard builders. Every inline button carries an encoded Action."""

import math
from typing import Callable

from qlbot.services.action_codec import NOOP, Action, ResourceKind, Verb, encode

MENU_TASKS = "📋 Tasks"
MENU_ENVS = "🔑 Envs"
MENU_SUBS = "📦 Subscriptions"
MENU_DEPS = "📚 Dependencies"
MENU_SCRIPTS = "📁 Scripts"
MENU_HELP = "❓ Help"

MAIN_MENU = {
    "keyboard": [
        [{"text": MENU_TASKS}, {"text": MENU_ENVS}],
        [{"text": MENU_SUBS}, {"text": MENU_DEPS}],
        [{"text": MENU_SCRIPTS}, {"text": MENU_HELP}],
    ],
    "resize_keyboard": True,
    "is_persistent": True,
}


def button(text: str, action: Action) -> dict:
    return {"text": text, "callback_data": encode(action)}


def label(text: str) -> dict:
    """Inert button used for captions and page counters."""
    return button(text, NOOP)


def inline(rows: list[list[dict]]) -> dict:
    return {"inline_keyboard": rows}


def single(text: str, action: Action) -> dict:
    return inline([[button(text, action)]])


def page_window(total: int, page: int, page_size: int) -> tuple[int, int, int, int]:
    """Clamp page into range; returns (page, total_pages, start, end)."""
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(0, page), total_pages - 1)
    start = page * page_size
    return page, total_pages, start, min(start + page_size, total)


def nav_row(
    page: int,
    total_pages: int,
    to_page: Callable[[int], Action],
    prev_text: str = "⬅️",
    next_text: str = "➡️",
) -> list[dict]:
    row = []
    if page > 0:
        row.append(button(prev_text, to_page(page - 1)))
    row.append(label(f"{page + 1}/{total_pages}"))
    if page < total_pages - 1:
        row.append(button(next_text, to_page(page + 1)))
    return row


def back_to_list(kind: ResourceKind, text: str = "⬅️ Back to list") -> list[dict]:
    return [button(text, Action(Verb.LIST, kind))]


def cancel_to(action: Action) -> dict:
    return single("❌ Cancel", action)

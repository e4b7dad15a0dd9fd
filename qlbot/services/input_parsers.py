"""Grammars for the free-text replies a pending action expects.

Each parser raises ValidationFailed with the expected format so the caller can
re-prompt while keeping the pending action alive.
"""

from dataclasses import dataclass
from typing import Optional

from qlbot.services.errors import ValidationFailed
from qlbot.services.panel_api import DEFAULT_SCHEDULE

ENV_FORMAT = "NAME=value"
TASK_FORMAT = "name|command|schedule"
SUBSCRIPTION_FORMAT = "name|url|schedule|branch"
SCHEDULE_EXAMPLE = "0 8 * * *"


@dataclass(frozen=True)
class EnvInput:
    name: str
    value: str


@dataclass(frozen=True)
class TaskInput:
    name: str
    command: str
    schedule: str


@dataclass(frozen=True)
class SubscriptionInput:
    name: str
    url: str
    schedule: str
    branch: str


@dataclass(frozen=True)
class SubscriptionPatch:
    name: Optional[str] = None
    url: Optional[str] = None
    schedule: Optional[str] = None
    branch: Optional[str] = None

    def apply(self, subscription: dict) -> dict:
        updated = dict(subscription)
        for field in ("name", "url", "schedule", "branch"):
            value = getattr(self, field)
            if value:
                updated[field] = value
        return updated


def parse_schedule(text: str, default_aliases: tuple[str, ...] = ()) -> str:
    """Cron expression with 5 or 6 fields; aliases map to the daily default."""
    schedule = " ".join(text.split())
    if schedule.lower() in default_aliases:
        return DEFAULT_SCHEDULE
    if len(schedule.split(" ")) not in (5, 6):
        raise ValidationFailed("Invalid cron expression", expected_format=SCHEDULE_EXAMPLE)
    return schedule


def parse_env(text: str) -> EnvInput:
    name, sep, value = text.partition("=")
    if not sep:
        raise ValidationFailed("Invalid format", expected_format=ENV_FORMAT)
    name, value = name.strip(), value.strip()
    if not name or not value:
        raise ValidationFailed("Name and value must not be empty", expected_format=ENV_FORMAT)
    return EnvInput(name=name, value=value)


def parse_task(text: str) -> TaskInput:
    parts = text.split("|")
    if len(parts) < 3:
        raise ValidationFailed("Invalid format", expected_format=TASK_FORMAT)
    name, command, schedule = (part.strip() for part in parts[:3])
    if not name or not command or not schedule:
        raise ValidationFailed("Name, command and schedule are all required", expected_format=TASK_FORMAT)
    return TaskInput(name=name, command=command, schedule=parse_schedule(schedule))


def parse_subscription(text: str) -> SubscriptionInput:
    parts = [part.strip() for part in text.split("|")]
    if len(parts) < 2:
        raise ValidationFailed("Invalid format", expected_format=SUBSCRIPTION_FORMAT)
    name, url = parts[0], parts[1]
    if not name or not url:
        raise ValidationFailed("Name and URL must not be empty", expected_format=SUBSCRIPTION_FORMAT)
    schedule = parse_schedule(parts[2]) if len(parts) > 2 and parts[2] else DEFAULT_SCHEDULE
    branch = parts[3] if len(parts) > 3 else ""
    return SubscriptionInput(name=name, url=url, schedule=schedule, branch=branch)


def parse_subscription_patch(text: str) -> SubscriptionPatch:
    """Blank fields keep their current value: `||0 8 * * *|` changes only the schedule."""
    parts = [part.strip() for part in text.split("|")] + ["", "", "", ""]
    name, url, schedule, branch = parts[:4]
    if not any((name, url, schedule, branch)):
        raise ValidationFailed("Nothing to change", expected_format=SUBSCRIPTION_FORMAT)
    return SubscriptionPatch(
        name=name or None,
        url=url or None,
        schedule=parse_schedule(schedule) if schedule else None,
        branch=branch or None,
    )


def parse_dependency_names(text: str) -> list[str]:
    names = [name for name in text.split() if name]
    if not names:
        raise ValidationFailed("Enter at least one dependency name", expected_format="name1 name2")
    return names

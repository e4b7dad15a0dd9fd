"""Compact encoding of button actions into Telegram callback_data.

Telegram caps callback_data at 64 bytes. Fixed fields (ids, pages, dependency
types) are written verbatim; free-form paths are percent-encoded and cut at a
character boundary so the decoded path is always a prefix of the original.
Handlers re-resolve truncated paths against the cached script tree.

Decoding is a full-match over a closed grammar, so no rule can shadow a more
specific one (`tasks_refresh_2` never reads as a task page), and anything
outside the grammar decodes to NOOP instead of raising.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional
from urllib.parse import quote, unquote

from qlbot.services.panel_api import DependencyType

MAX_CALLBACK_BYTES = 64


class Verb(str, Enum):
    NOOP = "noop"
    LIST = "list"
    REFRESH = "refresh"
    SHOW = "show"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    RUN = "run"
    STOP = "stop"
    ENABLE = "enable"
    DISABLE = "disable"
    LOG = "log"
    REINSTALL = "reinstall"
    SCHEDULE = "schedule"


class ResourceKind(str, Enum):
    NONE = "none"
    TASK = "task"
    ENV = "env"
    SUBSCRIPTION = "subscription"
    DEPENDENCY = "dependency"
    SCRIPT = "script"


@dataclass(frozen=True)
class Action:
    verb: Verb
    kind: ResourceKind = ResourceKind.NONE
    id: Optional[str] = None
    page: int = 0
    path: Optional[str] = None
    dep_type: Optional[DependencyType] = None

    def __post_init__(self):
        # Wire forms carry ids as digits and read an empty path back as absent
        if self.id is not None:
            object.__setattr__(self, "id", str(self.id))
        if self.path == "":
            object.__setattr__(self, "path", None)

    @property
    def is_noop(self) -> bool:
        return self.verb is Verb.NOOP


NOOP = Action(Verb.NOOP)

# Wire tags per resource family
_TASK_ID_TAGS = {
    Verb.SHOW: "cron_",
    Verb.RUN: "cron_run_",
    Verb.STOP: "cron_stop_",
    Verb.ENABLE: "cron_en_",
    Verb.DISABLE: "cron_dis_",
    Verb.DELETE: "cron_del_",
    Verb.EDIT: "cron_edit_",
    Verb.LOG: "cron_log_",
}
_ENV_ID_TAGS = {
    Verb.SHOW: "env_",
    Verb.ENABLE: "env_en_",
    Verb.DISABLE: "env_dis_",
    Verb.DELETE: "env_del_",
    Verb.EDIT: "env_edit_",
}
_SUB_ID_TAGS = {
    Verb.SHOW: "sub_",
    Verb.RUN: "sub_run_",
    Verb.ENABLE: "sub_en_",
    Verb.DISABLE: "sub_dis_",
    Verb.DELETE: "sub_del_",
    Verb.EDIT: "sub_edit_",
}
_ID_TAGS = {
    ResourceKind.TASK: _TASK_ID_TAGS,
    ResourceKind.ENV: _ENV_ID_TAGS,
    ResourceKind.SUBSCRIPTION: _SUB_ID_TAGS,
}
_LIST_TAGS = {
    ResourceKind.TASK: "tasks_",
    ResourceKind.ENV: "envs_",
    ResourceKind.SUBSCRIPTION: "subs_",
}
_CREATE_TAGS = {
    ResourceKind.TASK: "task_new",
    ResourceKind.ENV: "env_add",
    ResourceKind.SUBSCRIPTION: "sub_add",
}
SCRIPT_ROOT_TOKEN = "root"


# === ENCODE ===


def _fit(prefix: str, value: str, suffix: str = "") -> str:
    """Percent-encode value and keep as many whole characters as the ceiling allows."""
    budget = MAX_CALLBACK_BYTES - len(prefix) - len(suffix)
    pieces = []
    used = 0
    for char in value:
        piece = quote(char, safe="")
        if used + len(piece) > budget:
            break
        pieces.append(piece)
        used += len(piece)
    return prefix + "".join(pieces) + suffix


def _require_id(action: Action) -> str:
    if action.id is None or not str(action.id).isdigit():
        raise ValueError(f"{action.verb.value} {action.kind.value} needs a numeric id, got {action.id!r}")
    return str(action.id)


def _require_page(action: Action) -> int:
    if action.page < 0:
        raise ValueError(f"Page must be non-negative, got {action.page}")
    return action.page


def _require_path(action: Action) -> str:
    if not action.path:
        raise ValueError(f"{action.verb.value} {action.kind.value} needs a path")
    return action.path


def _require_dep_type(action: Action) -> str:
    if action.dep_type is None:
        raise ValueError(f"{action.verb.value} dependency needs a dependency type")
    return DependencyType(action.dep_type).value


def _encode_unchecked(action: Action) -> str:
    verb, kind = action.verb, action.kind

    if verb is Verb.NOOP:
        return "noop"

    if kind in _LIST_TAGS:
        if verb is Verb.LIST:
            return f"{_LIST_TAGS[kind]}{_require_page(action)}"
        if verb is Verb.REFRESH:
            return f"{_LIST_TAGS[kind]}refresh_{_require_page(action)}"
        if verb is Verb.CREATE:
            return _CREATE_TAGS[kind]
        if kind is ResourceKind.TASK and verb is Verb.SCHEDULE:
            return _fit("newcron_", _require_path(action))
        tag = _ID_TAGS[kind].get(verb)
        if tag:
            return f"{tag}{_require_id(action)}"

    if kind is ResourceKind.DEPENDENCY:
        if verb is Verb.LIST:
            if action.dep_type is None:
                return "deps_main"
            dep_type = _require_dep_type(action)
            page = _require_page(action)
            return f"dep_list_{dep_type}" if page == 0 else f"dep_page_{dep_type}_{page}"
        if verb is Verb.REFRESH:
            if action.dep_type is None:
                return "deps_refresh"
            return f"dep_refresh_{_require_dep_type(action)}"
        if verb is Verb.CREATE:
            return f"dep_add_{_require_dep_type(action)}"
        if verb is Verb.REINSTALL:
            return f"dep_reinstall_{_require_id(action)}_{_require_dep_type(action)}"
        if verb is Verb.DELETE:
            return f"dep_del_{_require_id(action)}_{_require_dep_type(action)}"

    if kind is ResourceKind.SCRIPT:
        if verb is Verb.LIST:
            page = _require_page(action)
            if not action.path:
                return f"scripts_root_{page}"
            if page == 0:
                return _fit("sdir_", action.path)
            return _fit("scrp_", action.path, f"_{page}")
        if verb is Verb.REFRESH:
            if not action.path:
                return f"scr_refresh_{SCRIPT_ROOT_TOKEN}"
            encoded = _fit("scr_refresh_", action.path)
            # A folder literally named "root" must not collapse onto the root listing
            if encoded == f"scr_refresh_{SCRIPT_ROOT_TOKEN}":
                return "scr_refresh_%72oot"
            return encoded
        if verb is Verb.SCHEDULE:
            return _fit("scrrun_", _require_path(action))
        if verb is Verb.DELETE:
            return _fit("scrdel_", _require_path(action))

    raise ValueError(f"No encoding for {verb.value} {kind.value}")


def _carries(action: Action, data: str) -> bool:
    """True when data decodes back to action, allowing only a truncated path."""
    decoded = decode(data)
    if decoded.path is not None and decoded.path != action.path:
        if not (action.path or "").startswith(decoded.path):
            return False
        decoded = replace(decoded, path=action.path)
    return decoded == action


def encode(action: Action) -> str:
    data = _encode_unchecked(action)
    if len(data.encode("utf-8")) > MAX_CALLBACK_BYTES:
        raise ValueError(f"Callback data exceeds {MAX_CALLBACK_BYTES} bytes: {data!r}")
    if not _carries(action, data):
        raise ValueError(f"{data!r} cannot carry every field of {action}")
    return data


# === DECODE ===

_ID = r"(\d+)"
_PAGE = r"(\d+)"
_TYPE = "(" + "|".join(t.value for t in DependencyType) + ")"
_FREE = r"(.*)"
_REQUIRED_FREE = r"(.+)"

Rule = tuple[re.Pattern, Callable[[re.Match], Action]]


def _free(fragment: str) -> Optional[str]:
    value = unquote(fragment)
    return value or None


def _build_rules() -> list[Rule]:
    rules: list[Rule] = [(re.compile("noop"), lambda m: NOOP)]

    for kind, tag in _LIST_TAGS.items():
        rules.append((re.compile(f"{tag}{_PAGE}"), lambda m, k=kind: Action(Verb.LIST, k, page=int(m[1]))))
        rules.append(
            (re.compile(f"{tag}refresh_{_PAGE}"), lambda m, k=kind: Action(Verb.REFRESH, k, page=int(m[1])))
        )
    for kind, tag in _CREATE_TAGS.items():
        rules.append((re.compile(tag), lambda m, k=kind: Action(Verb.CREATE, k)))
    for kind, tags in _ID_TAGS.items():
        for verb, tag in tags.items():
            rules.append((re.compile(f"{tag}{_ID}"), lambda m, k=kind, v=verb: Action(v, k, id=m[1])))
    rules.append(
        (
            re.compile(f"newcron_{_REQUIRED_FREE}"),
            lambda m: Action(Verb.SCHEDULE, ResourceKind.TASK, path=_free(m[1])),
        )
    )

    dep = ResourceKind.DEPENDENCY
    rules += [
        (re.compile("deps_main"), lambda m: Action(Verb.LIST, dep)),
        (re.compile("deps_refresh"), lambda m: Action(Verb.REFRESH, dep)),
        (re.compile(f"dep_list_{_TYPE}"), lambda m: Action(Verb.LIST, dep, dep_type=DependencyType(m[1]))),
        (
            re.compile(f"dep_page_{_TYPE}_{_PAGE}"),
            lambda m: Action(Verb.LIST, dep, page=int(m[2]), dep_type=DependencyType(m[1])),
        ),
        (re.compile(f"dep_refresh_{_TYPE}"), lambda m: Action(Verb.REFRESH, dep, dep_type=DependencyType(m[1]))),
        (re.compile(f"dep_add_{_TYPE}"), lambda m: Action(Verb.CREATE, dep, dep_type=DependencyType(m[1]))),
        (
            re.compile(f"dep_reinstall_{_ID}_{_TYPE}"),
            lambda m: Action(Verb.REINSTALL, dep, id=m[1], dep_type=DependencyType(m[2])),
        ),
        (
            re.compile(f"dep_del_{_ID}_{_TYPE}"),
            lambda m: Action(Verb.DELETE, dep, id=m[1], dep_type=DependencyType(m[2])),
        ),
    ]

    script = ResourceKind.SCRIPT
    rules += [
        (re.compile(f"scripts_root_{_PAGE}"), lambda m: Action(Verb.LIST, script, page=int(m[1]))),
        (re.compile(f"sdir_{_FREE}"), lambda m: Action(Verb.LIST, script, path=_free(m[1]))),
        (re.compile(f"scrp_{_FREE}_{_PAGE}"), lambda m: Action(Verb.LIST, script, page=int(m[2]), path=_free(m[1]))),
        (re.compile(f"scr_refresh_{SCRIPT_ROOT_TOKEN}"), lambda m: Action(Verb.REFRESH, script)),
        (
            re.compile(f"scr_refresh_(?!{SCRIPT_ROOT_TOKEN}$){_FREE}"),
            lambda m: Action(Verb.REFRESH, script, path=_free(m[1])),
        ),
        (re.compile(f"scrrun_{_REQUIRED_FREE}"), lambda m: Action(Verb.SCHEDULE, script, path=_free(m[1]))),
        (re.compile(f"scrdel_{_REQUIRED_FREE}"), lambda m: Action(Verb.DELETE, script, path=_free(m[1]))),
    ]
    return rules


_RULES = _build_rules()


def decode(data: Optional[str]) -> Action:
    if not data or len(data.encode("utf-8", errors="replace")) > MAX_CALLBACK_BYTES:
        return NOOP
    for pattern, build in _RULES:
        match = pattern.fullmatch(data)
        if match:
            return build(match)
    return NOOP

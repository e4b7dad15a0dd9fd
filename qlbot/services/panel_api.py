"""Qinglong /open endpoints for the five resource families.

Every call goes through CachedGateway; the cache key of a write only matters
for its resource class, which is what gets invalidated.
"""

from enum import Enum
from typing import Any, Optional

from qlbot.services import gateway as gw
from qlbot.services.gateway import CachedGateway


class DependencyType(str, Enum):
    PYTHON3 = "python3"
    NODEJS = "nodejs"
    LINUX = "linux"

    @property
    def code(self) -> int:
        return DEPENDENCY_TYPE_CODES[self]


DEPENDENCY_TYPE_CODES = {
    DependencyType.PYTHON3: 0,
    DependencyType.NODEJS: 1,
    DependencyType.LINUX: 2,
}

DEFAULT_SCHEDULE = "0 0 * * *"

_DEFAULT_TTLS = {gw.TASKS: 30.0, gw.ENVS: 60.0, gw.SUBS: 60.0, gw.DEPS: 120.0, gw.SCRIPTS: 30.0}


class PanelApi:
    def __init__(self, gateway: CachedGateway, ttls: Optional[dict[str, float]] = None):
        self.gateway = gateway
        self.ttls = {**_DEFAULT_TTLS, **(ttls or {})}

    async def _read(self, endpoint: str, key: str) -> dict:
        return await self.gateway.call("GET", endpoint, None, key, self.ttls[gw.resource_prefix(key)])

    async def _write(self, method: str, endpoint: str, body: Any, resource_class: str) -> dict:
        return await self.gateway.call(method, endpoint, body, resource_class)

    # === TASKS (crons) ===

    async def list_tasks(self) -> dict:
        return await self._read("/open/crons", gw.cache_key(gw.TASKS, "list"))

    async def get_task(self, task_id: str) -> dict:
        return await self._read(f"/open/crons/{task_id}", gw.cache_key(gw.TASKS, "detail", task_id))

    async def task_log(self, task_id: str) -> dict:
        # Logs change while a task runs; never cached
        return await self.gateway.call("GET", f"/open/crons/{task_id}/log")

    async def create_task(self, name: str, command: str, schedule: str) -> dict:
        body = {"name": name, "command": command, "schedule": schedule}
        return await self._write("POST", "/open/crons", body, gw.TASKS)

    async def update_task_schedule(self, task_id: str, schedule: str) -> dict:
        return await self._write("PUT", "/open/crons", {"id": int(task_id), "schedule": schedule}, gw.TASKS)

    async def task_action(self, action: str, task_id: str) -> dict:
        """action: run, stop, enable or disable."""
        return await self._write("PUT", f"/open/crons/{action}", [int(task_id)], gw.TASKS)

    async def delete_task(self, task_id: str) -> dict:
        return await self._write("DELETE", "/open/crons", [int(task_id)], gw.TASKS)

    # === ENVS ===

    async def list_envs(self) -> dict:
        return await self._read("/open/envs", gw.cache_key(gw.ENVS, "list"))

    async def create_env(self, name: str, value: str) -> dict:
        return await self._write("POST", "/open/envs", [{"name": name, "value": value}], gw.ENVS)

    async def update_env(self, env_id: str, name: str, value: str) -> dict:
        body = {"id": int(env_id), "name": name, "value": value}
        return await self._write("PUT", "/open/envs", body, gw.ENVS)

    async def env_action(self, action: str, env_id: str) -> dict:
        """action: enable or disable."""
        return await self._write("PUT", f"/open/envs/{action}", [int(env_id)], gw.ENVS)

    async def delete_env(self, env_id: str) -> dict:
        return await self._write("DELETE", "/open/envs", [int(env_id)], gw.ENVS)

    # === SUBSCRIPTIONS ===

    async def list_subscriptions(self) -> dict:
        return await self._read("/open/subscriptions", gw.cache_key(gw.SUBS, "list"))

    async def create_subscription(
        self, name: str, url: str, schedule: str = DEFAULT_SCHEDULE, branch: str = ""
    ) -> dict:
        body = {"name": name, "url": url, "schedule": schedule, "type": "public-repo"}
        if branch:
            body["branch"] = branch
        return await self._write("POST", "/open/subscriptions", body, gw.SUBS)

    async def update_subscription(self, subscription: dict) -> dict:
        return await self._write("PUT", "/open/subscriptions", subscription, gw.SUBS)

    async def subscription_action(self, action: str, sub_id: str) -> dict:
        """action: run, enable or disable."""
        return await self._write("PUT", f"/open/subscriptions/{action}", [int(sub_id)], gw.SUBS)

    async def delete_subscription(self, sub_id: str) -> dict:
        return await self._write("DELETE", "/open/subscriptions", [int(sub_id)], gw.SUBS)

    # === DEPENDENCIES ===

    async def list_dependencies(self, dep_type: DependencyType) -> dict:
        return await self._read(
            f"/open/dependencies?type={dep_type.value}", gw.cache_key(gw.DEPS, dep_type.value)
        )

    async def add_dependencies(self, dep_type: DependencyType, names: list[str]) -> dict:
        body = [{"name": name, "type": dep_type.code} for name in names]
        return await self._write("POST", "/open/dependencies", body, gw.cache_key(gw.DEPS, dep_type.value))

    async def reinstall_dependency(self, dep_id: str, dep_type: DependencyType) -> dict:
        return await self._write(
            "PUT", "/open/dependencies/reinstall", [int(dep_id)], gw.cache_key(gw.DEPS, dep_type.value)
        )

    async def delete_dependency(self, dep_id: str, dep_type: DependencyType) -> dict:
        return await self._write(
            "DELETE", "/open/dependencies", [int(dep_id)], gw.cache_key(gw.DEPS, dep_type.value)
        )

    # === SCRIPTS ===

    async def script_tree(self) -> dict:
        return await self._read("/open/scripts", gw.cache_key(gw.SCRIPTS, "tree"))

    async def upload_script(self, filename: str, content: str, path: str = "") -> dict:
        body = {"filename": filename, "content": content, "path": path}
        return await self._write("POST", "/open/scripts", body, gw.SCRIPTS)

    async def delete_script(self, filename: str, path: str = "") -> dict:
        return await self._write("DELETE", "/open/scripts", {"filename": filename, "path": path}, gw.SCRIPTS)

    async def invalidate(self, prefix: str = "") -> None:
        await self.gateway.invalidate(prefix)

import asyncio

import pytest

from qlbot.services.action_codec import Action, ResourceKind, Verb, decode, encode
from qlbot.services.errors import UnresolvedScriptPath
from qlbot.services.panel_api import DependencyType
from qlbot.services.resource_views import (
    LOG_TAIL_CHARS,
    dep_list_screen,
    env_detail_screen,
    resolve_folder,
    resolve_script_path,
    scripts_screen,
    split_entries,
    task_detail_screen,
    task_log_screen,
    tasks_screen,
)
from tests.conftest import ok

SCRIPT = ResourceKind.SCRIPT

TREE = [
    {"title": "utils", "children": [{"title": "a.py"}, {"title": "lib", "children": [{"title": "deep.js"}]}]},
    {"title": "b.js"},
    {"title": "c.sh"},
]


def callback_data(screen) -> list[str]:
    return [key["callback_data"] for row in screen.markup["inline_keyboard"] for key in row]


class TestTaskScreens:
    def test_pagination(self, bot, panel):
        tasks = [{"id": i, "name": f"task {i}"} for i in range(20)]
        panel.on("GET", "/open/crons", ok(tasks))

        screen = asyncio.run(tasks_screen(bot.panel_for(42), 1))

        data = callback_data(screen)
        assert "cron_8" in data and "cron_15" in data
        assert "cron_7" not in data and "cron_16" not in data
        assert "tasks_0" in data and "tasks_2" in data

    def test_page_is_clamped(self, bot, panel):
        panel.on("GET", "/open/crons", ok([{"id": 1, "name": "only"}]))

        screen = asyncio.run(tasks_screen(bot.panel_for(42), 9))

        assert "tasks_refresh_0" in callback_data(screen)

    def test_counts(self, bot, panel):
        tasks = [{"id": 1, "isRunning": 1}, {"id": 2, "isDisabled": 1}, {"id": 3}]
        panel.on("GET", "/open/crons", ok(tasks))

        screen = asyncio.run(tasks_screen(bot.panel_for(42)))

        assert "3 total | ✅2 🏃1 🔕1" in screen.text

    def test_missing_task(self, bot, panel):
        panel.on("GET", "/open/crons/9", {"code": 400, "message": "not found"})

        screen = asyncio.run(task_detail_screen(bot.panel_for(42), "9"))

        assert screen.text == "❌ Task not found"

    def test_detail_escapes_fields(self, bot, panel):
        panel.on("GET", "/open/crons/9", ok({"id": 9, "name": "<b>x</b>", "command": "a && b", "isDisabled": 1}))

        screen = asyncio.run(task_detail_screen(bot.panel_for(42), "9"))

        assert "&lt;b&gt;x&lt;/b&gt;" in screen.text
        assert "a &amp;&amp; b" in screen.text
        assert "cron_en_9" in callback_data(screen)

    def test_long_log_keeps_tail(self, bot, panel):
        log = "head" + "x" * LOG_TAIL_CHARS + "<end>"
        panel.on("GET", "/open/crons/9", ok({"id": 9, "name": "Job"}))
        panel.on("GET", "/open/crons/9/log", ok(log))

        screen = asyncio.run(task_log_screen(bot.panel_for(42), "9"))

        assert "...(truncated)" in screen.text
        assert "head" not in screen.text
        assert screen.text.endswith("&lt;end&gt;</pre>")


class TestEnvScreens:
    def test_detail_from_cached_list(self, bot, panel):
        panel.on("GET", "/open/envs", ok([{"id": 4, "name": "TOKEN", "value": "v", "status": 1, "remarks": "r"}]))

        async def scenario():
            api = bot.panel_for(42)
            return await env_detail_screen(api, "4"), await env_detail_screen(api, "5")

        found, missing = asyncio.run(scenario())
        assert "Remarks: r" in found.text
        assert "env_en_4" in callback_data(found)
        assert missing.text == "❌ Variable not found"
        assert len(panel.calls("GET", "/open/envs")) == 1


class TestDependencyScreens:
    def test_rows_carry_type(self, bot, panel):
        panel.on("GET", "/open/dependencies?type=linux", ok([{"id": 2, "name": "curl", "status": 2}]))

        screen = asyncio.run(dep_list_screen(bot.panel_for(42), DependencyType.LINUX))

        data = callback_data(screen)
        assert "dep_reinstall_2_linux" in data
        assert "dep_del_2_linux" in data
        assert "deps_main" in data
        assert screen.markup["inline_keyboard"][0][0]["text"] == "❌ curl"


class TestScriptScreens:
    def test_root_listing(self, bot, panel):
        panel.on("GET", "/open/scripts", ok(TREE))

        screen = asyncio.run(scripts_screen(bot.panel_for(42)))

        data = callback_data(screen)
        assert "sdir_utils" in data
        assert "scrrun_b.js" in data and "scrdel_c.sh" in data
        assert "scr_refresh_root" in data
        assert "1 folders | 📄 2 files" in screen.text

    def test_folder_listing_uses_folder_path(self, bot, panel):
        panel.on("GET", "/open/scripts", ok(TREE))

        screen = asyncio.run(scripts_screen(bot.panel_for(42), "utils"))

        data = callback_data(screen)
        assert data[0] == "scripts_root_0"
        assert "sdir_lib" in data
        assert "scrdel_utils%2Fa.py" in data
        assert "scr_refresh_utils" in data

    def test_file_pagination(self, bot, panel):
        panel.on("GET", "/open/scripts", ok([{"title": f"s{i}.js"} for i in range(7)]))

        screen = asyncio.run(scripts_screen(bot.panel_for(42), "", 1))

        data = callback_data(screen)
        assert "scrdel_s5.js" in data and "scrdel_s0.js" not in data
        assert "scripts_root_0" in data
        assert "(page 2/2)" in screen.text

    def test_load_failure(self, bot, panel):
        panel.on("GET", "/open/scripts", {"code": 500, "message": "disk"})

        screen = asyncio.run(scripts_screen(bot.panel_for(42)))

        assert screen.text == "❌ Failed to load scripts: disk"
        assert screen.markup is None


class TestTreeHelpers:
    def test_split_entries(self):
        assert split_entries(TREE) == (["utils"], ["b.js", "c.sh"])

    def test_resolve_folder(self):
        assert resolve_folder(TREE, Action(Verb.LIST, SCRIPT, path="lib")) == "lib"
        assert resolve_folder(TREE, Action(Verb.REFRESH, SCRIPT, path="utils")) == "utils"
        assert resolve_folder(TREE, Action(Verb.LIST, SCRIPT)) == ""

    def test_resolve_script_path(self):
        assert resolve_script_path(TREE, Action(Verb.DELETE, SCRIPT, path="utils/a.py")) == "utils/a.py"
        assert resolve_script_path(TREE, Action(Verb.SCHEDULE, SCRIPT, path="lib/deep.js")) == "lib/deep.js"

    def test_prefix_of_an_untruncated_name_does_not_match(self):
        with pytest.raises(UnresolvedScriptPath) as error:
            resolve_script_path(TREE, Action(Verb.DELETE, SCRIPT, path="utils/a"))
        assert error.value.matches == []

    def test_missing_script(self):
        with pytest.raises(UnresolvedScriptPath) as error:
            resolve_script_path(TREE, Action(Verb.DELETE, SCRIPT, path="gone.js"))
        assert str(error.value) == "Not found: gone.js"

    def test_truncated_name_shared_by_two_files(self):
        names = [f"{'x' * 60}_v{i}.js" for i in (1, 2)]
        tree = [{"title": name} for name in names]
        pressed = decode(encode(Action(Verb.DELETE, SCRIPT, path=names[1])))

        with pytest.raises(UnresolvedScriptPath) as error:
            resolve_script_path(tree, pressed)
        assert error.value.matches == names

    def test_exact_name_is_ambiguous_when_a_longer_name_truncates_to_it(self):
        short = "y" * 57
        tree = [{"title": short}, {"title": short + "_v2.js"}]

        with pytest.raises(UnresolvedScriptPath):
            resolve_script_path(tree, Action(Verb.DELETE, SCRIPT, path=short))

    def test_folder_named_root(self):
        tree = [{"title": "root", "children": [{"title": "a.js"}]}]
        pressed = decode("scr_refresh_%72oot")

        assert resolve_folder(tree, pressed) == "root"

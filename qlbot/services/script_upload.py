"""Adding scripts to the panel from a forwarded file or a link.

After a successful upload the user is offered a button that schedules the
new script as a task.
"""

import re
from typing import Optional

import httpx

from qlbot.logging_config import get_logger
from qlbot.schemas.telegram import TelegramDocument
from qlbot.services import gateway as gw
from qlbot.services.action_codec import Action, ResourceKind, Verb
from qlbot.services.errors import QinglongError, ScriptRejected
from qlbot.services.interaction import Interaction
from qlbot.services.keyboards import button, inline, label
from qlbot.services.resource_views import esc

logger = get_logger("script_upload")

SCRIPT_EXTENSIONS = (".js", ".py", ".sh", ".ts")
MAX_SCRIPT_BYTES = 1024 * 1024
MIN_SCRIPT_CHARS = 10
DOWNLOAD_TIMEOUT_SECONDS = 30.0
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

_URL_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)
_DIRECT_SCRIPT_URL = re.compile(r"https?://.*\.(js|py|sh|ts)$", re.IGNORECASE)
_CODE_HOSTS = ("github.com", "raw.githubusercontent.com", "gitee.com")


def extension_of(file_name: str) -> str:
    dot = file_name.rfind(".")
    return file_name[dot:].lower() if dot >= 0 else ""


def looks_like_script_url(text: str) -> bool:
    if not text:
        return False
    return any(host in text for host in _CODE_HOSTS) or bool(_DIRECT_SCRIPT_URL.search(text))


def normalize_script_url(url: str) -> str:
    """Point GitHub and Gitee blob pages at the raw file."""
    if "github.com" in url and "/blob/" in url:
        url = url.replace("github.com", "raw.githubusercontent.com", 1).replace("/blob/", "/", 1)
    if "gitee.com" in url and "/blob/" in url:
        url = url.replace("/blob/", "/raw/", 1)
    return url


def file_name_from_url(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1].split("?", 1)[0].split("#", 1)[0]


def source_label(url: str) -> str:
    if "github" in url:
        return "GitHub"
    if "gitee" in url:
        return "Gitee"
    return "direct link"


def _unsupported(ext: str) -> str:
    return f"❌ Unsupported file type: {esc(ext or 'no extension')}\n\nSupported: {', '.join(SCRIPT_EXTENSIONS)}"


def _schedule_offer(file_name: str) -> dict:
    return inline(
        [
            [
                button("✅ Create task", Action(Verb.SCHEDULE, ResourceKind.TASK, path=file_name)),
                label("❌ Just save"),
            ]
        ]
    )


async def fetch_script(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    try:
        async with httpx.AsyncClient(
            timeout=DOWNLOAD_TIMEOUT_SECONDS, transport=transport, follow_redirects=True
        ) as client:
            response = await client.get(url, headers={"User-Agent": USER_AGENT})
    except httpx.HTTPError as e:
        raise ScriptRejected(f"Download failed: {e.__class__.__name__}") from e

    if not response.is_success:
        raise ScriptRejected(f"Download failed: HTTP {response.status_code}")
    if len(response.content) > MAX_SCRIPT_BYTES:
        raise ScriptRejected("File too large (max 1 MB)")

    content = response.text
    if len(content) < MIN_SCRIPT_CHARS:
        raise ScriptRejected("File is empty or too small")
    return content


async def _upload(it: Interaction, file_name: str, content: str) -> None:
    gw.ensure_ok(await it.panel.upload_script(file_name, content), "Upload failed")
    logger.info(
        f"Script uploaded: {file_name}",
        extra={"context": {"chat_id": it.chat_id, "size": len(content)}},
    )


async def handle_document(it: Interaction, document: TelegramDocument) -> None:
    file_name = document.file_name or ""
    ext = extension_of(file_name)
    if ext not in SCRIPT_EXTENSIONS:
        await it.reply(_unsupported(ext))
        return
    if (document.file_size or 0) > MAX_SCRIPT_BYTES:
        await it.reply("❌ File too large (max 1 MB)")
        return

    await it.reply(f"⏳ Uploading: {esc(file_name)}")
    try:
        file_url = await it.bot.telegram.get_file_url(document.file_id)
        if file_url is None:
            raise ScriptRejected("Could not fetch file info")
        content = await fetch_script(file_url, it.bot.download_transport)
        await _upload(it, file_name, content)
    except QinglongError as e:
        await it.reply(f"❌ Upload failed: {esc(e.message)}")
        return

    await it.reply(
        f"✅ <b>{esc(file_name)}</b> uploaded!\n\nCreate a scheduled task for it?",
        _schedule_offer(file_name),
    )


async def handle_script_url(it: Interaction, text: str) -> None:
    match = _URL_PATTERN.search(text)
    if not match:
        await it.reply("❌ Could not find a link")
        return

    url = normalize_script_url(match.group(0))
    file_name = file_name_from_url(url)
    ext = extension_of(file_name)
    if ext not in SCRIPT_EXTENSIONS:
        await it.reply(_unsupported(ext) + "\n\nMake sure the link points to a script file")
        return

    shown = url[:60] + ("..." if len(url) > 60 else "")
    await it.reply(f"⏳ Downloading: {esc(file_name)}\n\n<code>{esc(shown)}</code>")
    try:
        content = await fetch_script(url, it.bot.download_transport)
        await _upload(it, file_name, content)
    except QinglongError as e:
        await it.reply(f"❌ Processing failed: {esc(e.message)}")
        return

    await it.reply(
        f"✅ <b>{esc(file_name)}</b> uploaded!\n\n"
        f"📁 Size: {len(content) / 1024:.1f} KB\n"
        f"🔗 Source: {source_label(url)}\n\n"
        "Create a scheduled task for it?",
        _schedule_offer(file_name),
    )

"""
Conversation API server.

Stores conversation configurations created by the calling application and
launches the LiveKit agent worker as a child process.

Routes:
    GET  /health
    POST /api/conversations
    GET  /api/conversations/{id}

Run: python src/server.py
"""

import asyncio
import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from aiohttp import web

from persistence import (
    ConversationRecord,
    ConversationStore,
    ConversationStoreError,
    create_store,
    normalize_media_mode,
)
from settings import MissingEnvironmentError, ServerSettings, load_env

logger = logging.getLogger("server")

AGENT_SCRIPT = Path(__file__).resolve().parent / "agent.py"

REQUIRED_FIELDS_ERROR = (
    "Missing required snake_case fields: agent_name, webhook_link, conversation_type"
)


def error_response(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_object(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


class AgentProcessLauncher:
    """
    Spawns the agent worker (``agent.py start``) next to the API server.

    The worker inherits the server's environment and stdio. Its exit code is
    logged; it is terminated when the server shuts down.
    """

    def __init__(self, script_path: Path = AGENT_SCRIPT, args: Sequence[str] = ("start",)):
        self.script_path = Path(script_path)
        self.args = list(args)
        self.process: Optional[asyncio.subprocess.Process] = None
        self._watch_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self.process = await asyncio.create_subprocess_exec(
            sys.executable,
            str(self.script_path),
            *self.args,
            env=os.environ.copy(),
        )
        logger.info(f"[API] Agent process started (pid={self.process.pid})")
        self._watch_task = asyncio.create_task(self._watch())

    async def _watch(self) -> None:
        code = await self.process.wait()
        logger.info(f"[API] Agent process exited with code {code}")

    async def stop(self, timeout: float = 10.0) -> None:
        """Terminate the worker (kill after timeout) and wait for the exit watcher."""
        if self.process is not None and self.process.returncode is None:
            logger.info("[API] Stopping agent process")
            try:
                self.process.terminate()
                await asyncio.wait_for(self.process.wait(), timeout=timeout)
            except ProcessLookupError:
                logger.info("[API] Agent process already exited")
            except asyncio.TimeoutError:
                logger.warning(f"[API] Agent process did not exit after {timeout}s, killing")
                self.process.kill()
                await self.process.wait()

        if self._watch_task is not None:
            await self._watch_task
            self._watch_task = None


class ConversationAPI:
    """Request handlers for the conversation endpoints."""

    def __init__(self, store: ConversationStore, settings: ServerSettings):
        self.store = store
        self.settings = settings
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    async def ensure_schema(self) -> None:
        """Initialize the database schema once per process."""
        if self._schema_ready:
            return
        async with self._schema_lock:
            if not self._schema_ready:
                await asyncio.to_thread(self.store.init_schema)
                self._schema_ready = True

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True})

    async def create_conversation(self, request: web.Request) -> web.Response:
        try:
            text = await request.text()
            body = json.loads(text) if text.strip() else {}
        except (json.JSONDecodeError, UnicodeDecodeError):
            return error_response(400, "Invalid JSON body")
        if not isinstance(body, dict):
            return error_response(400, "Invalid JSON body")

        conversation_type = _optional_str(body.get("conversation_type")) or ""
        agent_name = _optional_str(body.get("agent_name")) or ""
        webhook_link = _optional_str(body.get("webhook_link")) or ""
        if not agent_name or not webhook_link or not conversation_type:
            return error_response(400, REQUIRED_FIELDS_ERROR)

        raw_id = body.get("id")
        if raw_id is None or (isinstance(raw_id, str) and not raw_id.strip()):
            conversation_id = str(uuid.uuid4())
        else:
            try:
                conversation_id = str(uuid.UUID(str(raw_id).strip()))
            except ValueError:
                return error_response(400, "Invalid conversation id: must be a UUID")

        ui_variables = _as_object(body.get("ui_variables"))
        record = ConversationRecord(
            id=conversation_id,
            conversation_type=conversation_type,
            agent_name=agent_name,
            webhook_link=webhook_link,
            prompt_name=_optional_str(body.get("prompt_name")),
            prompt_label=_optional_str(body.get("prompt_label")),
            company_name=_optional_str(body.get("company_name")),
            prompt_text=_optional_str(body.get("prompt_text")),
            agent_description=_optional_str(body.get("agent_description")),
            media_mode=normalize_media_mode(body.get("media_mode")),
            prompt_variables=_as_object(body.get("prompt_variables")),
            ui_variables=ui_variables,
            complete_screen=_as_object(ui_variables.get("complete_screen")),
        )

        try:
            await self.ensure_schema()
            stored_id = await asyncio.to_thread(self.store.upsert_conversation, record)
        except ConversationStoreError as e:
            logger.error(f"[API] Failed to store conversation {conversation_id}: {e}")
            return error_response(500, "Failed to store conversation")

        logger.info(f"[API] Conversation {stored_id} stored ({conversation_type})")
        return web.json_response(
            {"id": stored_id, "url": self.settings.conversation_url(stored_id)}
        )

    async def get_conversation(self, request: web.Request) -> web.Response:
        conversation_id = request.match_info.get("conversation_id", "").strip()
        if not conversation_id:
            return error_response(400, "Missing conversation id")

        try:
            uuid.UUID(conversation_id)
        except ValueError:
            return error_response(404, "Conversation not found")

        try:
            await self.ensure_schema()
            row = await asyncio.to_thread(self.store.get_conversation, conversation_id)
        except ConversationStoreError as e:
            logger.error(f"[API] Failed to fetch conversation {conversation_id}: {e}")
            return error_response(500, "Failed to fetch conversation")

        if row is None:
            return error_response(404, "Conversation not found")
        return web.json_response(row)

    async def missing_id(self, request: web.Request) -> web.Response:
        return error_response(400, "Missing conversation id")


@web.middleware
async def not_found_middleware(request: web.Request, handler):
    """Answer unknown routes and methods with a JSON 404."""
    try:
        return await handler(request)
    except (web.HTTPNotFound, web.HTTPMethodNotAllowed):
        return error_response(404, "Not found")


STORE_KEY = web.AppKey("store", ConversationStore)
LAUNCHER_KEY = web.AppKey("launcher", AgentProcessLauncher)


def create_app(
    store: ConversationStore,
    settings: Optional[ServerSettings] = None,
    launcher: Optional[AgentProcessLauncher] = None,
) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        store: Conversation store used by the handlers
        settings: Server settings (defaults when omitted)
        launcher: Agent worker launcher started with the app; None disables
            spawning (tests)
    """
    settings = settings or ServerSettings()
    api = ConversationAPI(store, settings)

    app = web.Application(middlewares=[not_found_middleware])
    app[STORE_KEY] = store
    app.router.add_get("/health", api.health)
    app.router.add_post("/api/conversations", api.create_conversation)
    app.router.add_get("/api/conversations/", api.missing_id)
    app.router.add_get("/api/conversations/{conversation_id}", api.get_conversation)

    if launcher is not None:
        app[LAUNCHER_KEY] = launcher

        async def start_agent(app: web.Application):
            await app[LAUNCHER_KEY].start()

        async def stop_agent(app: web.Application):
            await app[LAUNCHER_KEY].stop()

        app.on_startup.append(start_agent)
        app.on_cleanup.append(stop_agent)

    async def close_store(app: web.Application):
        await asyncio.to_thread(app[STORE_KEY].close)

    app.on_cleanup.append(close_store)
    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    load_env()

    try:
        settings = ServerSettings.from_env()
    except MissingEnvironmentError as e:
        logger.error(str(e))
        sys.exit(1)

    store = create_store(database_url=settings.database_url)
    app = create_app(store, settings, launcher=AgentProcessLauncher())

    logger.info(f"API server listening on :{settings.port}")
    web.run_app(app, port=settings.port, print=None)


if __name__ == "__main__":
    main()

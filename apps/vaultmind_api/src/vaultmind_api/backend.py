#!/usr/bin/env python3
"""VaultMind API.

Chat REST endpoints plus a JSON-RPC tool front door over HTTP.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

from flask import Flask, request
from flask_restx import Api, Resource, fields

from vaultmind_core.action_runner import ActionRouter
from vaultmind_core.agent_tools import build_agent_registry
from vaultmind_core.classes import ActionResult
from vaultmind_core.common import get_logger
from vaultmind_core.components import (
    resolve_langfuse_status,
    resolve_llm_status,
    resolve_token_oracle_status,
)
from vaultmind_core.config import (
    ensure_app_config,
    get_app_config_path,
    get_config,
    get_config_value,
    start_preflight,
)
from vaultmind_core.llm import LiteLLMReasoningEngine
from vaultmind_core.permissions import Scope, ScopeAuthorizer, load_credential_resolver
from vaultmind_core.rpc import AUTH_ERROR, PARSE_ERROR, ProtocolFrontDoor
from vaultmind_core.security import build_default_pipeline
from vaultmind_core.session_runtime import ChatService
from vaultmind_core.session_store import SessionStore
from vaultmind_core.tool_registry import ToolCallContext, ToolDescriptor, ToolRegistry

T = TypeVar("T")

# Get the API token from app config
MASTER_API_TOKEN = get_config_value("api", "master_token", default="vmk-strong-password")
MAX_BODY_BYTES = int(get_config_value("api", "max_body_bytes", default=512 * 1024))

# Initialize logger
logging = get_logger(name="vaultmind-api")
logging.info("Starting VaultMind API server.")

_config = get_config()
if _config.runtime.preflight_enabled:
    start_preflight(_config)


class AsyncLoopThread:
    """Run coroutines on one background event loop from synchronous request threads."""

    def __init__(self) -> None:
        """Initialize the loop runner. The thread starts on first use."""
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def _ensure_started(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=self._serve, args=(loop,), name="vaultmind-async", daemon=True
                )
                thread.start()
                self._loop = loop
                self._thread = thread
            return self._loop

    @staticmethod
    def _serve(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        loop.run_forever()

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Submit a coroutine and block until it finishes."""
        loop = self._ensure_started()
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        return future.result(timeout)

    def stop(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5)
        loop.close()


async def _chat_tool_handler(arguments: dict[str, Any], context: ToolCallContext) -> ActionResult:
    session_id = arguments.get("sessionId") or context.session_id
    if not session_id:
        session_id = session_store.create_session(platform="mcp").id
    reply = await chat_service.process_message(
        session_id,
        str(arguments["message"]),
        wallet_address=arguments.get("walletAddress"),
        scopes=context.scopes,
        platform="mcp",
    )
    return ActionResult(success=True, message=reply.message, data=reply.to_dict())


def build_front_door_registry(registry: ToolRegistry) -> ToolRegistry:
    """Wallet tools plus the `chat_message` entry point into the chat surface."""
    front = ToolRegistry(registry.list_descriptors())
    front.register(
        ToolDescriptor(
            name="chat_message",
            description="Send a message to the VaultMind assistant and get its reply.",
            input_schema={
                "type": "object",
                "properties": {
                    "message": {"type": "string", "description": "User message"},
                    "sessionId": {"type": "string", "description": "Existing session id"},
                    "walletAddress": {"type": "string", "description": "Wallet to bind"},
                },
                "required": ["message"],
            },
            handler=_chat_tool_handler,
            required_scopes=frozenset({Scope.CHAT_WRITE}),
        )
    )
    return front


# Core wiring
session_store = SessionStore()
pipeline = build_default_pipeline()
router = ActionRouter()
registry = build_agent_registry(pipeline, router)
authorizer = ScopeAuthorizer(load_credential_resolver())
engine = LiteLLMReasoningEngine()
chat_service = ChatService(
    store=session_store,
    engine=engine,
    pipeline=pipeline,
    router=router,
    registry=registry,
    authorizer=authorizer,
)
front_door = ProtocolFrontDoor(build_front_door_registry(registry), authorizer)
async_runner = AsyncLoopThread()

# Create Flask application
app = Flask(__name__)

authorizations = {
    "apikey": {"type": "apiKey", "in": "header", "name": "X-API-KEY"},
    "bearer": {"type": "apiKey", "in": "header", "name": "Authorization"},
}
VERSION = get_config_value("runtime", "version", default="(Dev)")
api = Api(
    app,
    version=VERSION,
    title="VaultMind API",
    description="Talk to the VaultMind wallet assistant and call its tools",
    doc="/swagger-ui/",
    authorizations=authorizations,
    security="apikey",
)

ns = api.namespace("api", description="Chat operations")
mcp_ns = api.namespace("mcp", description="JSON-RPC tool front door")

chat_reply_model = api.model(
    "ChatReply",
    {
        "session_id": fields.String(required=True, description="Session identifier"),
        "message": fields.String(required=True, description="Assistant reply"),
        "state": fields.String(required=True, description="Final loop state"),
        "iterations": fields.Integer(description="Engine rounds used for the turn"),
        "actions": fields.List(
            fields.Nested(
                api.model(
                    "Action",
                    {
                        "intent": fields.String(required=True, description="Routed intent"),
                        "params": fields.Raw(description="Canonical action parameters"),
                    },
                )
            )
        ),
    },
)


@app.before_request
def log_request_info() -> None:
    """Log request metadata for debugging."""
    logging.debug("Endpoint: {}", request.endpoint)
    logging.debug("Content-Length: {}", request.content_length)


def _require_api_key() -> tuple[dict, int] | None:
    api_token = request.headers.get("X-API-Key", None)
    if api_token is None:
        return {"message": "API token is not provided."}, 401
    if api_token != MASTER_API_TOKEN:
        logging.warning("Unauthorized API call attempt.")
        return {"message": "Unauthorized"}, 401
    return None


def _bearer_credential() -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _serialize_session(session) -> dict[str, object]:
    return {
        "session_id": session.id,
        "platform": session.platform,
        "wallet_address": session.wallet_address,
        "created_at": session.created_at,
        "messages": [message.to_dict() for message in session.history()],
    }


@ns.route("/sessions")
class Sessions(Resource):
    """Create chat sessions."""

    @api.doc(security="apikey")
    def post(self) -> tuple[dict, int]:
        """Create a new session."""
        auth_error = _require_api_key()
        if auth_error:
            return auth_error
        payload = request.get_json(silent=True) or {}
        session = session_store.create_session(platform=str(payload.get("platform") or "web"))
        wallet_address = payload.get("wallet_address")
        if wallet_address:
            session_store.set_wallet(session.id, str(wallet_address))
        return {"session_id": session.id}, 200


@ns.route("/sessions/<string:session_id>")
class SessionDetail(Resource):
    """Return a session transcript."""

    @api.doc(security="apikey")
    def get(self, session_id: str) -> tuple[dict, int]:
        """Return the transcript for a live session."""
        auth_error = _require_api_key()
        if auth_error:
            return auth_error
        session = session_store.get(session_id)
        if session is None:
            return {"message": "Session not found."}, 404
        return _serialize_session(session), 200


@ns.route("/chat")
class Chat(Resource):
    """Process one chat message synchronously."""

    @api.doc(security="apikey")
    @api.expect(
        api.model(
            "ChatMessage",
            {
                "message": fields.String(required=True, description="The user message"),
                "session_id": fields.String(required=False, description="Existing session id"),
                "wallet_address": fields.String(required=False, description="Wallet to bind"),
                "platform": fields.String(required=False, description="web/telegram/discord"),
            },
        )
    )
    @api.response(200, "Success", chat_reply_model)
    @api.response(400, "Invalid input")
    @api.response(401, "Unauthorized")
    def post(self) -> tuple[dict, int]:
        """Run a chat turn and return the assistant's reply."""
        auth_error = _require_api_key()
        if auth_error:
            return auth_error
        request_data = request.get_json(silent=True) or {}
        message = request_data.get("message")
        if not message or not isinstance(message, str):
            return {"message": "Invalid input: 'message' is required"}, 400

        credential = _bearer_credential()
        scopes = None
        if credential is not None:
            scopes = authorizer.resolve_scopes(credential)
            if scopes is None:
                return {"message": "Invalid bearer credential."}, 401

        platform = str(request_data.get("platform") or "web")
        session_id = request_data.get("session_id")
        if not session_id:
            session_id = session_store.create_session(platform=platform).id

        logging.info("Received chat message for session {}", session_id)
        reply = async_runner.run(
            chat_service.process_message(
                session_id,
                message,
                wallet_address=request_data.get("wallet_address"),
                scopes=scopes,
                platform=platform,
            )
        )
        return reply.to_dict(), 200


@mcp_ns.route("")
class McpEndpoint(Resource):
    """JSON-RPC 2.0 endpoint for external tool callers."""

    @api.doc(security="bearer")
    def post(self):
        """Handle one JSON-RPC request."""
        if not request.is_json:
            return {"message": "Content-Type must be application/json"}, 415
        if request.content_length is not None and request.content_length > MAX_BODY_BYTES:
            return {"message": "Request body too large"}, 413
        body = request.get_data(cache=True)
        if len(body) > MAX_BODY_BYTES:
            return {"message": "Request body too large"}, 413

        response = async_runner.run(front_door.handle_payload(body, _bearer_credential()))
        if response is None:
            return app.response_class(status=204)
        error = response.get("error")
        if error is not None and error["code"] == PARSE_ERROR:
            return response, 400
        if error is not None and error["code"] == AUTH_ERROR:
            return response, 401
        return response, 200


@mcp_ns.route("/health")
class McpHealth(Resource):
    """Liveness probe for the front door plus component status."""

    def get(self) -> tuple[dict, int]:
        statuses = (resolve_llm_status(), resolve_langfuse_status(), resolve_token_oracle_status())
        return {
            "ok": True,
            "tools": len(front_door.registry),
            "components": [status.to_dict() for status in statuses],
        }, 200


def main() -> None:
    """Run the VaultMind API server."""
    ensure_app_config(get_app_config_path())
    app.run(
        debug=False,
        host=get_config_value("api", "host", default="0.0.0.0"),
        port=int(get_config_value("api", "port", default=5123)),
        threaded=True,
    )


if __name__ == "__main__":
    main()

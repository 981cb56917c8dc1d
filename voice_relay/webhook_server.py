"""
Webhook server for receiving Telegram updates.

The platform is acknowledged before any job work starts: dedup runs inline,
everything else runs as a background task after the 200 is sent.
"""
import hmac
import json
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from logging_setup import get_logger, Component
from observability.request_log import build_record

from .config import RelayConfig
from .control_api import router as control_router
from .runtime import RelayRuntime, build_runtime
from .updates import parse_update

logger = get_logger(Component.WEBHOOK_SERVER)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _raw_update_id(payload: dict) -> Optional[int]:
    value = payload.get("update_id")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def create_app(runtime: Optional[RelayRuntime] = None) -> FastAPI:
    """
    Build the FastAPI app. Without an explicit runtime, configuration is
    loaded from the environment (raises ConfigError if incomplete).
    """
    if runtime is None:
        runtime = build_runtime(RelayConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await runtime.startup()
        try:
            yield
        finally:
            await runtime.shutdown()

    app = FastAPI(title="Voice Relay Webhook Server", lifespan=lifespan)
    app.state.relay = runtime
    app.include_router(control_router)

    @app.post("/webhook")
    async def handle_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        secret_token: Optional[str] = Header(None, alias=SECRET_HEADER),
    ):
        """
        Telegram webhook endpoint.
        Returns 200 as soon as the update is accepted or recognized as a duplicate.
        """
        relay: RelayRuntime = request.app.state.relay

        expected = relay.config.secret_token
        if expected and not hmac.compare_digest((secret_token or "").encode(), expected.encode()):
            logger.warning("Unauthorized: invalid secret token")
            raise HTTPException(status_code=403, detail="Access denied")

        body = await request.body()
        if not body:
            logger.warning("Bad request: empty update body")
            raise HTTPException(status_code=400, detail="Bad Request")

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Failed to parse webhook body as JSON", body_size=len(body))
            raise HTTPException(status_code=400, detail="Bad Request")
        # Parsed JSON is always acknowledged with 200 from here on.
        if not isinstance(payload, dict):
            logger.warning("Ignoring non-object update", body_type=type(payload).__name__)
            return JSONResponse(content={"status": "ok"})

        background_tasks.add_task(
            relay.request_log.forward,
            build_record(request.method, str(request.url.path), payload),
        )

        try:
            event = parse_update(payload)
        except ValidationError as e:
            update_id = _raw_update_id(payload)
            logger.warning("Ignoring malformed update", update_id=update_id, error_count=e.error_count())
            if update_id is not None:
                relay.dedup.should_process(update_id)
            return JSONResponse(content={"status": "ok"})

        if event.update_id is not None and not relay.dedup.should_process(event.update_id):
            return JSONResponse(content={"status": "ok"})

        background_tasks.add_task(relay.handler.dispatch, event)
        logger.debug("Update accepted", update_id=event.update_id, kind=event.kind.value)
        return JSONResponse(content={"status": "ok"})

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "component": "voice_relay"}

    return app

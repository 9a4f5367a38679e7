"""
Cloud Run entrypoint: Pub/Sub push subscription -> Slack.

    uvicorn logrelay.relay.app:app --host 0.0.0.0 --port ${PORT:-8080}

Status codes follow Pub/Sub push semantics: 2xx acks, 4xx for messages that
will never succeed (bad payload, missing channel / token), 5xx to retry.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from logrelay.common.env import load_local_env
from logrelay.common.logging import init_structured_logging
from logrelay.messaging.pubsub import parse_pubsub_push
from logrelay.notify.slack import SlackError, SlackNotConfiguredError, SlackValidationError
from logrelay.relay.handler import (
    SERVICE_NAME,
    InvalidAlertPayload,
    LogAlertHandler,
    get_logger,
    get_sender,
    reset_logger_cache,
)


logger = logging.getLogger(__name__)


def create_app(handler: Optional[LogAlertHandler] = None) -> FastAPI:
    """
    Build the relay app. Without `handler`, the lifespan wires the cached
    process logger and Slack client, and closes the logger on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_logger = handler is None
        if owns_logger:
            load_local_env()
            init_structured_logging(service=SERVICE_NAME)
            app.state.handler = LogAlertHandler(get_logger(), get_sender())
        else:
            app.state.handler = handler
        try:
            yield
        finally:
            if owns_logger:
                reset_logger_cache()

    app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/pubsub/push")
    async def pubsub_push(request: Request) -> dict[str, Any]:
        try:
            body = await request.json()
        except Exception as e:
            logger.warning("pubsub.rejected reason=invalid_json error=%s", e)
            raise HTTPException(status_code=400, detail="invalid_json") from e

        try:
            message = parse_pubsub_push(body)
        except ValueError as e:
            logger.warning("pubsub.rejected reason=invalid_push error=%s", e)
            raise HTTPException(status_code=400, detail=str(e)) from e

        relay: LogAlertHandler = request.app.state.handler
        try:
            ts = await run_in_threadpool(relay.handle, message, request.headers)
        except InvalidAlertPayload as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except (SlackValidationError, SlackNotConfiguredError) as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except SlackError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return {"status": "ok", "ts": ts}

    return app


app = create_app()

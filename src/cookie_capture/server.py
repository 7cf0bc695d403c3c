"""HTTP front door for the cookie-capture engine (the dashboard calls this)."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from aiohttp import web
from pydantic import ValidationError

from .capture.orchestrator import CookieCaptureOrchestrator
from .config import AppConfig
from .errors import ConfigurationError, SessionFailure, first_line
from .models import LoginRequest
from .totp import DEFAULT_PERIOD_SECONDS, current_code

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_ALLOWED_METHODS = "GET, POST, OPTIONS"
_ALLOWED_HEADERS = "Content-Type, Authorization"


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = str(err.get("msg", "invalid value"))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "invalid request"


def _cors_middleware(origins: list[str]):
    allow_any = "*" in origins

    @web.middleware
    async def cors(request: web.Request, handler: Handler) -> web.StreamResponse:
        origin = request.headers.get("Origin", "")
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            response = await handler(request)

        if origin and (allow_any or origin in origins):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
        elif allow_any:
            response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = _ALLOWED_METHODS
        response.headers["Access-Control-Allow-Headers"] = _ALLOWED_HEADERS
        return response

    return cors


@web.middleware
async def _json_errors(request: web.Request, handler: Handler) -> web.StreamResponse:
    logger.info("%s %s", request.method, request.path)
    try:
        return await handler(request)
    except web.HTTPNotFound:
        logger.info("404 Not Found: %s %s", request.method, request.path)
        return _error(404, "Not found")
    except web.HTTPMethodNotAllowed as e:
        return _error(405, f"Method {e.method} not allowed")
    except web.HTTPException:
        raise
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return _error(500, first_line(e) if str(e).strip() else "Internal server error")


class CaptureServer:
    """
    Serves the capture endpoint plus health and TOTP helpers.

    A client disconnect cancels its handler, which closes that request's browser session.
    """

    def __init__(
        self,
        config: AppConfig,
        orchestrator: Optional[CookieCaptureOrchestrator] = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator or CookieCaptureOrchestrator(
            browser=config.browser_settings(),
            timings=config.capture_timings(),
            step_debug_dir=config.step_debug_dir(),
        )
        self._slots = asyncio.Semaphore(config.server.max_concurrent_captures)
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._app = self._build_app()

    @property
    def app(self) -> web.Application:
        return self._app

    def _build_app(self) -> web.Application:
        app = web.Application(
            middlewares=[_cors_middleware(self.config.server.cors_origins), _json_errors],
        )
        app.router.add_get("/api/health", self._handle_health)
        app.router.add_post("/capture-cookies", self._handle_capture)
        app.router.add_post("/api/capture-cookies", self._handle_capture)
        app.router.add_post("/api/totp", self._handle_totp)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app, handler_cancellation=True)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.config.server.host, self.config.server.port)
        await self._site.start()
        logger.info("Capture server listening on http://%s:%s", self.config.server.host, self.config.server.port)

    async def stop(self) -> None:
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    async def _handle_capture(self, request: web.Request) -> web.Response:
        body = await _read_json_object(request)
        if isinstance(body, web.Response):
            return body

        try:
            login = LoginRequest.model_validate(body)
            self.orchestrator.validate(login)
        except ValidationError as e:
            return _error(400, _validation_message(e))
        except ConfigurationError as e:
            logger.info("Rejected capture request: %s", e)
            return _error(400, str(e))

        logger.info("=== Cookie capture request for %s ===", login.target_url)
        async with self._slots:
            try:
                result = await self.orchestrator.capture(login)
            except ConfigurationError as e:
                return _error(400, str(e))
            except SessionFailure as e:
                logger.error("Cookie capture failed: %s", e)
                return _error(500, first_line(e))

        return web.json_response({"cookies": result.cookies.to_json()})

    async def _handle_totp(self, request: web.Request) -> web.Response:
        body = await _read_json_object(request)
        if isinstance(body, web.Response):
            return body

        secret = str(body.get("secret") or "")
        try:
            period = int(body.get("period") or DEFAULT_PERIOD_SECONDS)
            code, remaining = current_code(secret, period=period)
        except (TypeError, ValueError):
            return _error(400, "period must be an integer number of seconds")
        except ConfigurationError as e:
            return _error(400, str(e))
        return web.json_response({"code": code, "secondsRemaining": remaining, "period": period})


async def _read_json_object(request: web.Request) -> dict | web.Response:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Request body must be JSON")
    if not isinstance(body, dict):
        return _error(400, "Request body must be a JSON object")
    return body

"""Map an HTTP call from the core onto an intent invocation."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from apps.voice_app import Client, Intent
from lib.contracts.app_server import ErrorResponse, IntentCallRequest, IntentCallResponse
from lib.telemetry.logger import get_logger
from lib.utils.helpers import negotiate_language

log = get_logger(__name__)

DEFAULT_ERROR_STATUS = 400
TIMEOUT_STATUS = 504


class BadRequestError(Exception):
    http_error_code = 400
    code = "bad_request"


class IntentTimeoutError(Exception):
    http_error_code = TIMEOUT_STATUS
    code = "timeout"


def error_response(ex: BaseException) -> JSONResponse:
    """Turn any exception into the error body the core understands.

    The status is the exception's ``http_error_code`` when it declares one.
    """
    status = getattr(ex, "http_error_code", None)
    if not isinstance(status, int) or not 400 <= status <= 599:
        status = DEFAULT_ERROR_STATUS
    code = getattr(ex, "code", None)
    body = ErrorResponse(
        error_message=str(ex) or type(ex).__name__,
        error_code=str(code) if code is not None else None,
    )
    return JSONResponse(status_code=status, content=body.model_dump(by_alias=True, exclude_none=True))


@dataclass
class IntentDispatcher:
    """Run intents on behalf of the core.

    Each call gets its own :class:`~apps.voice_app.ClientContext` carrying the
    negotiated language, so concurrent calls do not interfere.
    """

    client: Client
    fallback_language: str = "en"
    timeout_s: Optional[float] = 30.0

    async def parse_args(self, request: Request) -> Dict[str, Any]:
        raw = await request.body()
        if not raw.strip():
            return {}
        try:
            payload = json.loads(raw)
        except ValueError as ex:
            raise BadRequestError(f"Request body is not valid JSON: {ex}") from ex
        try:
            return IntentCallRequest.model_validate(payload).args
        except ValidationError as ex:
            raise BadRequestError("Request body must be an object with an 'args' object") from ex

    def language_for(self, intent: Intent, request: Request) -> str:
        languages = (intent.app.languages if intent.app is not None else None) or [self.fallback_language]
        return negotiate_language(
            request.headers.get("accept-language"),
            languages,
            self.fallback_language,
        )

    async def run_intent(self, intent: Intent, args: Dict[str, Any], lang: str) -> str:
        context = self.client.context(lang)
        try:
            result = await asyncio.wait_for(intent.run(args, context), self.timeout_s)
        except asyncio.TimeoutError as ex:
            raise IntentTimeoutError(f"Intent {intent.id} timed out after {self.timeout_s}s") from ex
        return "" if result is None else str(result)

    async def intent_call(self, intent: Intent, request: Request) -> JSONResponse:
        """Handle one authenticated call.  Never raises."""

        app_id = intent.app.id if intent.app is not None else "?"
        try:
            args = await self.parse_args(request)
            lang = self.language_for(intent, request)
            log.info("Intent %s/%s called with args %s, lang %s", app_id, intent.id, sorted(args), lang)
            text = await self.run_intent(intent, args, lang)
        except Exception as ex:
            log.exception("Intent %s/%s failed", app_id, intent.id)
            return error_response(ex)
        return JSONResponse(IntentCallResponse(response_text=text).model_dump(by_alias=True))


__all__ = ["BadRequestError", "IntentDispatcher", "IntentTimeoutError", "error_response"]

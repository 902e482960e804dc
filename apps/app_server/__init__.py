"""HTTP app server.

Wraps one or more voice apps as a REST service for the core.  On
:meth:`HTTPAppServer.start` the apps are loaded, a random port in the
configured range is bound, one ``POST /<appId>/<intentId>`` route is added
per intent and every app is registered with the core together with a fresh
auth key.  Only then does :meth:`HTTPAppServer.serve` start answering calls;
the core has to present the auth key on each of them.

The result of a call is JSON with either the sentence to say to the user
(``responseText``) or an ``errorMessage``/``errorCode`` pair.
"""

from __future__ import annotations

import asyncio
import socket
from typing import Iterable, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request

from apps.voice_app import AppBase, Client, Intent
from lib.config.app_server_loader import AppServerConfig
from lib.telemetry.logger import get_logger
from lib.utils.helpers import generate_auth_key
from lib.utils.validation import ensure

from .auth import AuthenticationError, Authenticator, authentication_error_handler
from .dispatch import IntentDispatcher
from .ports import PortBinder
from .registration import CoreRegistrationClient, callback_url

log = get_logger(__name__)


class HTTPAppServer:
    def __init__(
        self,
        apps: Iterable[AppBase],
        config: Optional[AppServerConfig] = None,
        binder: Optional[PortBinder] = None,
        registration: Optional[CoreRegistrationClient] = None,
    ) -> None:
        self.apps: List[AppBase] = list(apps)
        ensure(len(self.apps) > 0, "Need at least one app")
        for app in self.apps:
            ensure(isinstance(app, AppBase), "App has wrong type", TypeError)
        self.config = config or AppServerConfig()
        self.binder = binder or PortBinder(
            port_from=self.config.port_from,
            port_to=self.config.port_to,
            max_failures=self.config.max_bind_failures,
            host=self.config.host,
        )
        self.registration = registration or CoreRegistrationClient(
            self.config.core_url, timeout_s=self.config.registration_timeout_s
        )
        self.client: Optional[Client] = None
        self.fastapi_app: Optional[FastAPI] = None
        self.port: Optional[int] = None
        self.url: Optional[str] = None
        self._auth_key: Optional[str] = None
        self._socket: Optional[socket.socket] = None
        self._uvicorn: Optional[uvicorn.Server] = None

    @property
    def auth_key(self) -> Optional[str]:
        return self._auth_key

    async def start(self) -> None:
        """Load the apps, bind a port, add the routes and register with the core."""

        self.client = Client()
        await self.client.load_apps(self.apps, self.config.default_language)
        self._auth_key = generate_auth_key(self.config.auth_key_length)

        self.port, self._socket = self.binder.bind()
        try:
            self.fastapi_app = self._create_app()
            self.url = callback_url(self.registration.core_url, self.port)
            await self.registration.register_all(self.apps, self.url, self._auth_key)
        except BaseException:
            self.close()
            raise
        log.info("Listening on port %d, reachable as %s", self.port, self.url)
        log.info("Started and registered %d app(s)", len(self.apps))

    def _create_app(self) -> FastAPI:
        api = FastAPI(title="Voice app server")
        api.add_exception_handler(AuthenticationError, authentication_error_handler)
        authenticator = Authenticator(self._auth_key)
        dispatcher = IntentDispatcher(
            self.client,
            fallback_language=self.config.default_language,
            timeout_s=self.config.intent_timeout_s,
        )
        for app in self.apps:
            for intent in app.intents.values():
                ensure(isinstance(intent, Intent), "Intent has wrong type", TypeError)
                api.add_api_route(
                    f"/{app.id}/{intent.id}",
                    self._intent_endpoint(dispatcher, intent),
                    methods=["POST"],
                    dependencies=[Depends(authenticator)],
                    name=f"{app.id}.{intent.id}",
                )
        return api

    @staticmethod
    def _intent_endpoint(dispatcher: IntentDispatcher, intent: Intent):
        async def intent_call(request: Request):
            return await dispatcher.intent_call(intent, request)

        return intent_call

    async def serve(self) -> None:
        """Answer calls on the bound socket until the process is stopped."""

        ensure(self.fastapi_app is not None and self._socket is not None, "start() must run first", RuntimeError)
        config = uvicorn.Config(self.fastapi_app, log_level=self.config.log_level.lower(), log_config=None)
        self._uvicorn = uvicorn.Server(config)
        try:
            await self._uvicorn.serve(sockets=[self._socket])
        finally:
            self.close()

    @property
    def serving(self) -> bool:
        return self._uvicorn is not None and self._uvicorn.started

    def shutdown(self) -> None:
        """Ask a running :meth:`serve` to finish."""
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True

    async def run(self) -> None:
        await self.start()
        await self.serve()

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None


def run_app_server(apps: Iterable[AppBase], config: Optional[AppServerConfig] = None) -> None:
    asyncio.run(HTTPAppServer(apps, config).run())


__all__ = ["HTTPAppServer", "run_app_server"]

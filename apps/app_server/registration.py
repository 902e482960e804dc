"""Announce the app server to the core.

For every app one ``PUT <core>/app/http`` is sent with the callback URL,
the auth key the core has to present on every call, and the capability
descriptor of the app.
"""

from __future__ import annotations

import errno
import socket
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import httpx

from apps.voice_app import AppBase
from lib.contracts.app_server import RegistrationRequest
from lib.telemetry.logger import get_logger
from lib.utils.helpers import ensure_trailing_slash, is_loopback_url

from .intents_json import build_capability_descriptor

log = get_logger(__name__)

REGISTRATION_PATH = "app/http"


class CoreNotRunningError(ConnectionError):
    """The configured core could not be reached at all."""

    def __init__(self, core_url: str) -> None:
        super().__init__(f"Core is not running, on <{core_url}>")
        self.core_url = core_url


def _connection_refused(ex: BaseException) -> bool:
    """Look for a refused connection along the cause chain of ``ex``."""
    seen = set()
    cur: Optional[BaseException] = ex
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        if isinstance(cur, ConnectionRefusedError) or getattr(cur, "errno", None) == errno.ECONNREFUSED:
            return True
        cur = cur.__cause__ or cur.__context__
    return False


def callback_url(core_url: str, port: int, hostname: Optional[str] = None) -> str:
    """URL under which the core can reach us.

    A core on loopback gets a loopback URL; a remote core gets our host name.
    """
    if is_loopback_url(core_url):
        return f"http://localhost:{port}/"
    return f"http://{hostname or socket.gethostname()}:{port}/"


@dataclass
class CoreRegistrationClient:
    core_url: str
    timeout_s: float = 10.0
    transport: Optional[httpx.AsyncBaseTransport] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.core_url = ensure_trailing_slash(self.core_url)

    def registration_request(self, app: AppBase, url: str, auth_key: str) -> RegistrationRequest:
        return RegistrationRequest(
            app_id=app.id,
            url=url,
            auth_key=auth_key,
            intents=build_capability_descriptor(app),
        )

    async def _put(self, client: httpx.AsyncClient, payload: RegistrationRequest) -> None:
        try:
            resp = await client.put(
                self.core_url + REGISTRATION_PATH,
                json=payload.model_dump(by_alias=True),
            )
        except httpx.ConnectError as ex:
            if _connection_refused(ex):
                raise CoreNotRunningError(self.core_url) from ex
            raise
        resp.raise_for_status()

    async def register(self, app: AppBase, url: str, auth_key: str) -> None:
        await self.register_all([app], url, auth_key)

    async def register_all(
        self,
        apps: Iterable[AppBase],
        url: str,
        auth_key: str,
        continue_on_error: bool = False,
    ) -> List[str]:
        """Register every app and return the ids of the apps that failed.

        By default the first failure is raised and the remaining apps are
        not attempted.  With ``continue_on_error`` failures are logged and
        collected instead.
        """

        failed: List[str] = []
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
            for app in apps:
                try:
                    await self._put(client, self.registration_request(app, url, auth_key))
                except (httpx.HTTPError, CoreNotRunningError) as ex:
                    if not continue_on_error:
                        raise
                    log.error("Registering app %s failed: %s", app.id, ex)
                    failed.append(app.id)
                    continue
                log.info("Registered app %s with core %s", app.id, self.core_url)
        return failed


__all__ = ["CoreNotRunningError", "CoreRegistrationClient", "callback_url"]

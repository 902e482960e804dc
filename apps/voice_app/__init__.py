"""Voice app framework interfaces.

The app server does not know what an app does.  It only needs the shape
described here: an :class:`AppBase` owns :class:`Intent` objects, each intent
has sample commands, typed parameters and an async :meth:`Intent.run`.  A
:class:`Client` holds the loaded apps for the lifetime of the process, and a
:class:`ClientContext` is created for every single intent call so that the
response language of one call never leaks into another.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from fastapi.concurrency import run_in_threadpool

from lib.telemetry.logger import get_logger
from lib.utils.validation import ensure

from .datatypes import DataType

log = get_logger(__name__)


class HTTPError(Exception):
    """Failure an intent raises to pick the HTTP status the core receives.

    ``code`` is an optional machine readable error code that is passed
    through to the core as ``errorCode``.
    """

    def __init__(self, http_error_code: int, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.http_error_code = http_error_code
        self.code = code


class Intent(ABC):
    """A named user command with typed parameters."""

    def __init__(
        self,
        id: str,
        commands: Optional[Iterable[str]] = None,
        parameters: Optional[Dict[str, DataType]] = None,
    ) -> None:
        self.id = id
        self.commands: List[str] = list(commands or [])
        self.parameters: Dict[str, DataType] = dict(parameters or {})
        self.app: Optional[AppBase] = None

    @abstractmethod
    async def run(self, args: Dict[str, Any], context: "ClientContext") -> str:
        """Execute the command and return the sentence to say to the user."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


IntentHandler = Callable[[Dict[str, Any], "ClientContext"], Union[str, Awaitable[str]]]


class FunctionIntent(Intent):
    """Intent backed by a plain function.

    Coroutine functions are awaited; ordinary functions run in the
    threadpool so they cannot block the event loop.
    """

    def __init__(
        self,
        id: str,
        handler: IntentHandler,
        commands: Optional[Iterable[str]] = None,
        parameters: Optional[Dict[str, DataType]] = None,
    ) -> None:
        super().__init__(id, commands, parameters)
        self.handler = handler

    async def run(self, args: Dict[str, Any], context: "ClientContext") -> str:
        if inspect.iscoroutinefunction(self.handler):
            return await self.handler(args, context)
        result = await run_in_threadpool(self.handler, args, context)
        if inspect.isawaitable(result):
            result = await result
        return result


class AppBase:
    """Bundle of intents forming one voice app."""

    def __init__(
        self,
        id: str,
        intents: Optional[Iterable[Intent]] = None,
        languages: Optional[Iterable[str]] = None,
    ) -> None:
        self.id = id
        self.languages: List[str] = list(languages or ["en"])
        self.intents: Dict[str, Intent] = {}
        for intent in intents or []:
            self.add_intent(intent)

    def add_intent(self, intent: Intent) -> None:
        ensure(isinstance(intent, Intent), "Intent has wrong type", TypeError)
        ensure(intent.id not in self.intents, f"Duplicate intent {intent.id!r} in app {self.id!r}")
        intent.app = self
        self.intents[intent.id] = intent

    async def load(self, client: "Client") -> None:
        """Hook for apps that fill their list types from their own data."""


@dataclass
class Client:
    """Process wide holder of the loaded apps."""

    apps: List[AppBase] = field(default_factory=list)
    lang: str = "en"

    async def load_apps(self, apps: Iterable[AppBase], lang: str = "en") -> None:
        self.lang = lang
        for app in apps:
            ensure(isinstance(app, AppBase), "App has wrong type", TypeError)
            await app.load(self)
            self.apps.append(app)
            log.info("Loaded app %s with %d intents", app.id, len(app.intents))

    def context(self, lang: Optional[str] = None) -> "ClientContext":
        return ClientContext(client=self, lang=lang or self.lang)


@dataclass(frozen=True)
class ClientContext:
    """Per call view of the client.  Immutable, one per intent invocation."""

    client: Client
    lang: str


__all__ = [
    "AppBase",
    "Client",
    "ClientContext",
    "FunctionIntent",
    "HTTPError",
    "Intent",
]

from dataclasses import dataclass, field
from pathlib import Path
import os
from typing import Any, Dict, List, Optional

from .yaml_loader import load_yaml


DEFAULT_CORE_URL = "http://localhost:12777/"
DEFAULT_PORT_FROM = 12127
DEFAULT_PORT_TO = 12712
CORE_URL_ENV = "APP_SERVER_CORE_URL"


@dataclass
class AppServerConfig:
    """Typed view over ``app_server.yaml``.

    Every key has a default so the server starts without a configuration
    file.  ``core_url`` is the only setting the host environment is expected
    to change, which is why it can also come from ``APP_SERVER_CORE_URL``.
    """

    raw: Dict[str, Any] = field(default_factory=dict)
    core_url: str = DEFAULT_CORE_URL
    host: str = "0.0.0.0"
    port_from: int = DEFAULT_PORT_FROM
    port_to: int = DEFAULT_PORT_TO
    max_bind_failures: int = 10
    auth_key_length: int = 10
    intent_timeout_s: Optional[float] = 30.0
    registration_timeout_s: float = 10.0
    default_language: str = "en"
    log_level: str = "INFO"
    apps: List[str] = field(default_factory=list)


def load_app_server_config(path: str = "config/app_server.yaml") -> AppServerConfig:
    """Load ``app_server.yaml`` and return an :class:`AppServerConfig`.

    Parameters
    ----------
    path:
        File system path to the YAML configuration file.  A missing file
        yields the defaults.
    """

    raw = load_yaml(path) if Path(path).exists() else {}
    section = raw.get("app_server", {}) or {}
    ports = section.get("port_range", {}) or {}
    timeout = section.get("intent_timeout_s", 30.0)
    cfg = AppServerConfig(
        raw=raw,
        core_url=str(section.get("core_url") or DEFAULT_CORE_URL),
        host=str(section.get("host", "0.0.0.0")),
        port_from=int(ports.get("from", DEFAULT_PORT_FROM)),
        port_to=int(ports.get("to", DEFAULT_PORT_TO)),
        max_bind_failures=int(section.get("max_bind_failures", 10)),
        auth_key_length=int(section.get("auth_key_length", 10)),
        intent_timeout_s=float(timeout) if timeout is not None else None,
        registration_timeout_s=float(section.get("registration_timeout_s", 10.0)),
        default_language=str(section.get("default_language", "en")),
        log_level=str(section.get("log_level", "INFO")),
        apps=list(section.get("apps", []) or []),
    )
    env_url = os.environ.get(CORE_URL_ENV)
    if env_url:
        cfg.core_url = env_url
    return cfg

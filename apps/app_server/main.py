"""Command line entry point of the app server.

Apps are named in the configuration as ``module:attribute`` strings; the
attribute is either an :class:`~apps.voice_app.AppBase` instance or a
callable returning one.

    voice-app-server --config config/app_server.yaml
"""

import argparse
import importlib
import sys
from typing import List, Optional, Sequence

from apps.app_server import run_app_server
from apps.voice_app import AppBase
from lib.config.app_server_loader import load_app_server_config
from lib.telemetry.logger import configure_logging, get_logger

log = get_logger(__name__)

DEFAULT_APPS = ["apps.sample_app:create_app"]


def load_app(spec: str) -> AppBase:
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"App must be given as 'module:attribute', got {spec!r}")
    target = getattr(importlib.import_module(module_name), attr)
    app = target() if callable(target) and not isinstance(target, AppBase) else target
    if not isinstance(app, AppBase):
        raise TypeError(f"{spec} did not produce an app")
    return app


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve voice apps to the core over HTTP.")
    parser.add_argument("--config", default="config/app_server.yaml", help="path to app_server.yaml")
    parser.add_argument("--core-url", help="base URL of the core, overrides the configuration")
    parser.add_argument("--log-level", help="logging level, overrides the configuration")
    parser.add_argument("--app", action="append", dest="apps", help="module:attribute of an app, repeatable")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    cfg = load_app_server_config(args.config)
    if args.core_url:
        cfg.core_url = args.core_url
    if args.log_level:
        cfg.log_level = args.log_level
    configure_logging(cfg.log_level)

    specs: List[str] = args.apps or cfg.apps or DEFAULT_APPS
    try:
        apps = [load_app(spec) for spec in specs]
        run_app_server(apps, cfg)
    except KeyboardInterrupt:
        return 0
    except Exception:
        log.exception("App server failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

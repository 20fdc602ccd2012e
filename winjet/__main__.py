from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from .api import create_app
from .app import App
from .runtime import ControlLoop
from .settings import data_local_dir, settings

_LOGGER = logging.getLogger("winjet")


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="winjet", description="Manage a dockurr/windows service")
    p.add_argument("--host", default=settings.api_host, help="Control surface bind address")
    p.add_argument("--port", type=int, default=settings.api_port, help="Control surface port")
    p.add_argument("--data-dir", default=None, help="Override the local data directory")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=settings.level,
        format="%(asctime)s %(levelname)-8s %(name)s [%(threadName)s] %(message)s",
    )

    data_dir = args.data_dir or data_local_dir()
    _LOGGER.debug("Using data directory %s", data_dir)

    loop = ControlLoop(App(data_dir, kvm_device=settings.kvm_device))
    loop.start()
    try:
        uvicorn.run(create_app(loop), host=args.host, port=args.port, log_level=settings.level.lower())
    finally:
        loop.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

#!/usr/bin/env python3
"""Origin server launcher.

Serves /rnd and /echo on a single port until SIGINT or SIGTERM. Port 0
selects an ephemeral port.
"""

import argparse
import asyncio
import logging
import signal
import socket
import sys
import threading
from typing import Iterable, Optional, Sequence

from aiohttp import web

from server.origin.app import build_app

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8888
DEFAULT_HOST = "0.0.0.0"


class OriginServer:
    """Origin application running on a dedicated event loop thread."""

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
        seed: Optional[int] = None,
        middlewares: Iterable = (),
    ):
        self.host = host
        self.port = port
        self._app = build_app(seed=seed, middlewares=middlewares)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._runner: Optional[web.AppRunner] = None
        self._actual_port: Optional[int] = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def actual_port(self) -> int:
        """The bound port; differs from ``port`` when 0 was requested."""
        if self._actual_port is None:
            raise RuntimeError("Server not started")
        return self._actual_port

    def start(self) -> None:
        """Bind, listen and begin accepting. Bind errors raise ``OSError`` here."""
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("Server already started")

            sock = socket.create_server((self.host, self.port))
            self._actual_port = sock.getsockname()[1]

            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._serve, name=f"origin-{self._actual_port}", daemon=True
            )
            self._thread.start()

        future = asyncio.run_coroutine_threadsafe(self._start_site(sock), self._loop)
        try:
            future.result()
        except BaseException:
            sock.close()
            self.stop()
            raise
        logger.info("Origin server listening on %s:%d", self.host, self._actual_port)

    def _serve(self) -> None:
        assert self._loop is not None
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    async def _start_site(self, sock: socket.socket) -> None:
        self._runner = web.AppRunner(self._app, access_log=None)
        await self._runner.setup()
        site = web.SockSite(self._runner, sock)
        await site.start()

    def stop(self) -> None:
        """Close the listener, drain in-flight handlers and stop the loop."""
        with self._lock:
            if self._loop is None or self._stopped:
                return
            self._stopped = True

        try:
            if self._runner is not None:
                asyncio.run_coroutine_threadsafe(
                    self._runner.cleanup(), self._loop
                ).result()
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
        logger.info("Origin server on port %d stopped", self._actual_port)

    def join(self, timeout: Optional[float] = None) -> None:
        """Block until the server thread exits."""
        if self._thread is not None:
            self._thread.join(timeout)

    def __enter__(self) -> "OriginServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
        self.join()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Origin server for HTTP client benchmarks"
    )
    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to listen on, 0 for ephemeral (default: {DEFAULT_PORT})",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    if not logging.root.handlers:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
        )

    server = OriginServer(port=args.port)
    try:
        server.start()
    except OSError as e:
        print(f"Error: cannot listen on port {args.port}: {e}", file=sys.stderr)
        return 1

    def _shutdown(signum, frame) -> None:
        print("Stopping embedded server")
        server.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    print(f"Embedded server is listening on port {server.actual_port}")
    server.join()
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Origin server handlers.

Endpoints:
- ``/rnd?c=<count>`` - ``count`` bytes of deterministic printable ASCII
- ``/echo`` - the request body, byte for byte
- anything else - 404
"""

import logging
import os
import re
from typing import Iterable, Optional

from aiohttp import web

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024
# /echo buffers the whole request body in memory.
MAX_ECHO_SIZE = 256 * 1024 * 1024

PATTERN_KEY = web.AppKey("pattern", bytes)

# Counts are signed 32-bit decimal integers.
MAX_COUNT = 2**31 - 1
COUNT_RE = re.compile(r"[+-]?[0-9]+", flags=re.ASCII)


def fill_pattern(seed: int) -> bytes:
    """Scratch buffer of bytes ``((seed + i) % 96) + 32``, all in [32, 127]."""
    return bytes((seed + i) % 96 + 32 for i in range(CHUNK_SIZE))


def startup_seed() -> int:
    """A non-negative seed, fixed for the life of the process."""
    return int.from_bytes(os.urandom(4), "big")


def parse_count(value: Optional[str]) -> int:
    """Parse the ``c`` parameter; raises ValueError unless it is a decimal in [0, 2**31 - 1]."""
    if value is None:
        raise ValueError("missing count")
    if not COUNT_RE.fullmatch(value):
        raise ValueError(f"malformed count: {value!r}")
    count = int(value)
    if count < 0:
        raise ValueError(f"negative count: {count}")
    if count > MAX_COUNT:
        raise ValueError(f"count out of range: {count}")
    return count


async def rnd(request: web.Request) -> web.StreamResponse:
    try:
        count = parse_count(request.query.get("c"))
    except ValueError:
        return web.Response(
            status=500, text=f"Invalid query format: {request.query_string}"
        )

    pattern = request.app[PATTERN_KEY]
    response = web.StreamResponse(status=200)
    response.content_length = count
    await response.prepare(request)

    remaining = count
    while remaining > 0:
        chunk = min(CHUNK_SIZE, remaining)
        await response.write(pattern[:chunk])
        remaining -= chunk

    await response.write_eof()
    return response


async def echo(request: web.Request) -> web.Response:
    body = await request.read()
    return web.Response(status=200, body=body)


async def not_found(request: web.Request) -> web.Response:
    return web.Response(status=404, text=f"Target not found: {request.path}")


def build_app(
    seed: Optional[int] = None, middlewares: Iterable = ()
) -> web.Application:
    """Create the origin application.

    Args:
        seed: Payload seed for /rnd; a per-process value when omitted
        middlewares: Extra aiohttp middlewares, e.g. for instrumentation
    """
    if seed is None:
        seed = startup_seed()
    if seed < 0:
        raise ValueError(f"Seed must be non-negative: {seed}")

    app = web.Application(middlewares=list(middlewares), client_max_size=MAX_ECHO_SIZE)
    app[PATTERN_KEY] = fill_pattern(seed)
    app.router.add_route("*", "/rnd", rnd)
    app.router.add_route("*", "/echo", echo)
    app.router.add_route("*", "/{target:.*}", not_found)
    logger.debug("Origin app built with seed %d", seed)
    return app

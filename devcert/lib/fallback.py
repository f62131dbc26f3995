"""Manual trust flow: serve the root CA over HTTP and let the browser import it."""

import asyncio
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from aiohttp import web

from .config import CERT_MIME_TYPE
from .logging_config import LOGGER
from .operator import Operator
from .process import spawn_detached

HELP_URL = "https://github.com/davewasmer/devcert#how-it-works"

Launcher = Callable[[str], Awaitable[asyncio.subprocess.Process]]

# A launch shell exits right after backgrounding the browser
LAUNCH_REAP_TIMEOUT = 5.0


@dataclass
class CertificateServer:
    """A running listener that hands out one certificate."""

    runner: web.AppRunner
    port: int

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}"

    async def close(self) -> None:
        await self.runner.cleanup()


def create_certificate_app(cert_bytes: bytes) -> web.Application:
    """Build an app answering every request with the certificate."""

    async def serve_certificate(request: web.Request) -> web.Response:
        return web.Response(body=cert_bytes, status=200, headers={"Content-Type": CERT_MIME_TYPE})

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", serve_certificate)
    return app


async def start_certificate_server(cert_path: Path, host: str = "127.0.0.1") -> CertificateServer:
    """Serve ``cert_path`` on an ephemeral port.

    The certificate is read up front so the listener keeps working after the
    working file has been cleared.
    """
    cert_bytes = await asyncio.to_thread(cert_path.read_bytes)

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind((host, 0))
    port = sock.getsockname()[1]

    runner = web.AppRunner(create_certificate_app(cert_bytes), access_log=None)
    await runner.setup()
    await web.SockSite(runner, sock).start()
    LOGGER.debug("Serving root certificate on port %d", port)
    return CertificateServer(runner=runner, port=port)


class FallbackFlow:
    """Walks the operator through importing the root CA by hand."""

    def __init__(self, operator: Operator, launcher: Launcher = spawn_detached) -> None:
        self.operator = operator
        self.launcher = launcher
        self.servers: list[CertificateServer] = []
        self.launches: list[asyncio.subprocess.Process] = []

    async def run(self, cert_path: Path, browser_command: str) -> CertificateServer:
        """Serve the certificate, open the browser on it and wait for the operator.

        Args:
            cert_path: Root CA certificate to offer
            browser_command: Command line that opens the browser, URL is appended

        Returns:
            The still running CertificateServer
        """
        server = await start_certificate_server(cert_path)
        self.servers.append(server)

        self.operator.notify(
            "Unable to automatically install SSL certificate - please follow the prompts at "
            f"{server.url} in Firefox to trust the root certificate"
        )
        self.operator.notify(f"See {HELP_URL} for more details")
        self.operator.notify("-- Press <Enter> once you finish the Firefox prompts --")

        try:
            self.launches.append(await self.launcher(f"{browser_command} {server.url}"))
        except OSError as e:
            LOGGER.warning("Could not launch %s, open %s manually: %s", browser_command, server.url, e)

        await self.operator.acknowledge()
        return server

    async def close(self) -> None:
        """Stop every listener and reap every launch process started by this flow."""
        servers, self.servers = self.servers, []
        for server in servers:
            await server.close()

        launches, self.launches = self.launches, []
        for process in launches:
            try:
                await asyncio.wait_for(process.wait(), LAUNCH_REAP_TIMEOUT)
            except TimeoutError:
                LOGGER.warning("Browser launch process %s did not exit", process.pid)

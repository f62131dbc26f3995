"""Operator interaction used when installation needs a human."""

import asyncio
import sys
import threading
from typing import Protocol


class Operator(Protocol):
    """Someone who can read guidance and confirm they acted on it."""

    def notify(self, message: str) -> None: ...

    async def acknowledge(self) -> None: ...


class TerminalOperator:
    """Operator on the controlling terminal: prints guidance, waits for Enter."""

    def __init__(self, stream=None, stdin=None) -> None:
        self.stream = stream or sys.stdout
        self.stdin = stdin or sys.stdin

    def notify(self, message: str) -> None:
        print(message, file=self.stream, flush=True)

    async def acknowledge(self) -> None:
        """Wait for one line on stdin.

        The read happens on a daemon thread that nothing joins, so cancelling
        (Ctrl-C) returns immediately and the interpreter can exit.
        """
        loop = asyncio.get_running_loop()
        line: asyncio.Future[str] = loop.create_future()

        def read_line() -> None:
            try:
                result = self.stdin.readline()
            except (OSError, ValueError) as e:
                _deliver(loop, line, e)
            else:
                _deliver(loop, line, result)

        threading.Thread(target=read_line, name="devcert-acknowledge", daemon=True).start()
        await line


def _deliver(loop: asyncio.AbstractEventLoop, future: asyncio.Future, value: object) -> None:
    def resolve() -> None:
        if future.done():
            return
        if isinstance(value, BaseException):
            future.set_exception(value)
        else:
            future.set_result(value)

    try:
        loop.call_soon_threadsafe(resolve)
    except RuntimeError:
        # Loop already closed, nobody is waiting any more
        pass

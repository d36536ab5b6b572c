"""Interactive gate — block until the operator finishes an out-of-band step.

The only such step today is the manual login: the browser is handed to a
human, and the run resumes when they press Enter.  The blocking read runs
on a daemon thread and hands its line back to the event loop, so a timeout
or the run's cancel token ends the wait immediately.  An abandoned read
stays parked on stdin; being a daemon, it never holds up ``asyncio.run``
or interpreter exit.
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

from dice_apply.errors import ActionableError
from dice_apply.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable


def _read_on_daemon_thread(reader: Callable[[str], str], prompt: str) -> asyncio.Future[str]:
    """Start *reader* on a daemon thread; the returned future gets its line."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def deliver(line: str | None, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line or "")

    def run() -> None:
        try:
            line = reader(prompt)
        except Exception as exc:
            result: tuple[str | None, BaseException | None] = (None, exc)
        else:
            result = (line, None)
        try:
            loop.call_soon_threadsafe(deliver, *result)
        except RuntimeError:
            # Loop already closed: the wait ended without this line.
            return

    threading.Thread(target=run, name="operator-input", daemon=True).start()
    return future


async def wait_for_operator(
    prompt: str,
    *,
    timeout: float | None = None,
    cancel: asyncio.Event | None = None,
    reader: Callable[[str], str] = input,
) -> str:
    """Show *prompt* and wait for the operator's confirmation.

    Args:
        prompt: Text shown to the operator.
        timeout: Seconds to wait; ``None`` or ``0`` waits indefinitely.
        cancel: Optional event that aborts the wait when set.
        reader: Blocking line reader (``input`` in production).

    Returns:
        Whatever the operator typed.

    Raises:
        ActionableError: TIMEOUT if *timeout* passes first, CANCELLED if
            *cancel* is set first, AUTHENTICATION if the input stream closed.
    """
    read_future = _read_on_daemon_thread(reader, prompt)
    waiters: set[asyncio.Future[object]] = {read_future}
    cancel_task: asyncio.Future[object] | None = None
    if cancel is not None:
        cancel_task = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_task)

    try:
        done, _pending = await asyncio.wait(
            waiters,
            timeout=timeout or None,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        if cancel_task is not None:
            cancel_task.cancel()
        if not read_future.done():
            read_future.cancel()

    if read_future in done:
        try:
            return read_future.result()
        except EOFError as exc:
            raise ActionableError.authentication(
                "dice",
                "input closed before the operator confirmed the login",
                suggestion="Run 'login' from an interactive terminal",
            ) from exc

    if cancel_task is not None and cancel_task in done:
        raise ActionableError.cancelled("operator confirmation")

    logger.warning("No operator confirmation within %.0fs", timeout or 0)
    raise ActionableError.timeout("operator confirmation", timeout or 0)

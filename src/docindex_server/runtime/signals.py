"""Signal handling for graceful shutdown.

On SIGINT/SIGTERM the app stops accepting writes (``shutdown_event`` is
set) and the previously installed handler, usually uvicorn's, still runs
so the server shuts down as normal.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
import signal
import threading
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from starlette.applications import Starlette


logger = logging.getLogger(__name__)


def install_shutdown_signals(app: Starlette) -> threading.Event:
    """Attach chained SIGINT/SIGTERM handlers that set ``app.state.shutdown_event``.

    Returns the event so other code can check it. Outside the main thread
    signal handlers cannot be installed; the event is still created.
    """

    existing = getattr(app.state, "shutdown_event", None)
    if isinstance(existing, threading.Event):
        return existing

    shutdown_event = threading.Event()
    app.state.shutdown_event = shutdown_event

    def _make_handler(sig: signal.Signals, previous: Any) -> Callable[[int, object | None], None]:
        def _handler(signum: int, frame: object | None) -> None:  # pragma: no cover - signal glue
            if not shutdown_event.is_set():
                logger.info("Received %s, rejecting new writes", sig.name)
                shutdown_event.set()
            if callable(previous):
                previous(signum, frame)
            elif previous == signal.SIG_DFL:
                signal.signal(signum, signal.SIG_DFL)
                signal.raise_signal(signum)

        return _handler

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous = signal.getsignal(sig)
            signal.signal(sig, _make_handler(sig, previous))
        except ValueError:
            logger.debug("Signal %s cannot be installed from this thread", sig.name)

    return shutdown_event

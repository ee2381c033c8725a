"""
Process lifecycle for the API server.

ProcessLifecycle owns the uvicorn server (and with it the listening socket)
for the whole run. SIGINT/SIGTERM are translated into ``shutdown()`` calls,
uncaught exceptions and unobserved asyncio failures into ``crash()``.

    STARTING -> LISTENING -> SHUTTING_DOWN -> STOPPED   (exit 0)
    any state -> CRASHED                                (exit 1)
"""

import asyncio
import contextlib
import logging
import os
import signal
import sys
import threading
from enum import Enum
from typing import Callable

import uvicorn
from fastapi import FastAPI

from .config import Settings

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(str, Enum):
    STARTING = "starting"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
    CRASHED = "crashed"


class LifecycleServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to its ProcessLifecycle."""

    def __init__(self, config: uvicorn.Config, lifecycle: "ProcessLifecycle"):
        super().__init__(config)
        self.lifecycle = lifecycle

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started and not self.should_exit:
            self.lifecycle.on_listening()


class ProcessLifecycle:
    """
    Run the server and manage its shutdown.

    Args:
        app: The ASGI application to serve
        settings: Service settings (host, port, drain timeout, environment)
        exit_func: Called with the exit code on a crash; ``os._exit`` by default
    """

    def __init__(
        self,
        app: FastAPI,
        settings: Settings,
        exit_func: Callable[[int], None] = os._exit,
    ):
        self.app = app
        self.settings = settings
        self.state = LifecycleState.STARTING
        self._exit = exit_func
        self._previous_excepthook = None
        self._previous_thread_excepthook = None

        config = uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
            timeout_graceful_shutdown=settings.shutdown_timeout,
        )
        self.server = LifecycleServer(config, self)

    def start(self) -> int:
        """Serve until shut down; returns the process exit code."""
        return asyncio.run(self._serve())

    async def _serve(self) -> int:
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(self._handle_async_exception)
        self._install_signal_handlers(loop)

        try:
            await self.server.serve()
        except Exception as exc:
            if self.state is LifecycleState.SHUTTING_DOWN:
                logger.critical("Error while closing server: %s", exc, exc_info=exc)
            else:
                logger.critical("Server failed: %s", exc, exc_info=exc)
            self.state = LifecycleState.CRASHED
            return 1
        finally:
            self._remove_signal_handlers(loop)

        if self.state in (LifecycleState.STARTING, LifecycleState.CRASHED):
            logger.critical("Server exited without serving")
            self.state = LifecycleState.CRASHED
            return 1

        self.state = LifecycleState.STOPPED
        logger.info("Server stopped")
        return 0

    def on_listening(self) -> None:
        self.state = LifecycleState.LISTENING
        port = self.bound_port()
        logger.info("Server running on port %d", port)
        logger.info("Health check: http://localhost:%d%s/health", port, self.settings.api_prefix)
        logger.info("API docs: http://localhost:%d%s", port, self.settings.docs_path)
        logger.info("Environment: %s", self.settings.node_env)

    def bound_port(self) -> int:
        """Port the socket is bound to; differs from settings when port 0 was requested."""
        for server in getattr(self.server, "servers", None) or []:
            for sock in server.sockets or ():
                return sock.getsockname()[1]
        return self.settings.port

    def shutdown(self, reason: str) -> None:
        """Stop accepting connections and drain in-flight requests."""
        if self.state not in (LifecycleState.STARTING, LifecycleState.LISTENING):
            logger.warning("%s received while %s, ignoring", reason, self.state.value)
            return

        logger.info("%s received. Shutting down gracefully...", reason)
        self.state = LifecycleState.SHUTTING_DOWN
        self.server.should_exit = True

    def crash(self, kind: str, exc: BaseException) -> None:
        """Log the failure and exit with code 1 immediately, without draining."""
        logger.critical("%s: %s", kind, exc, exc_info=(type(exc), exc, exc.__traceback__))
        self.state = LifecycleState.CRASHED
        for handler in logging.getLogger().handlers:
            handler.flush()
        self._exit(1)

    # Signal and crash hooks

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.shutdown, sig.name)
            except NotImplementedError:
                # Event loops without add_signal_handler (Windows)
                signal.signal(sig, self._handle_signal)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in HANDLED_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)

    def _handle_signal(self, signum, frame) -> None:
        self.shutdown(signal.Signals(signum).name)

    def _handle_async_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is None:
            loop.default_exception_handler(context)
            return
        self.crash("Unhandled rejection", exc)

    def _excepthook(self, exc_type, exc, tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            self._previous_excepthook(exc_type, exc, tb)
            return
        self.crash("Uncaught exception", exc)

    def _thread_excepthook(self, args) -> None:
        if issubclass(args.exc_type, SystemExit):
            self._previous_thread_excepthook(args)
            return
        self.crash("Uncaught exception", args.exc_value)

    def install_crash_hooks(self) -> None:
        """Route uncaught exceptions in any thread to crash(); stays in place until restored."""
        self._previous_excepthook = sys.excepthook
        self._previous_thread_excepthook = threading.excepthook
        sys.excepthook = self._excepthook
        threading.excepthook = self._thread_excepthook

    def restore_crash_hooks(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
        if self._previous_thread_excepthook is not None:
            threading.excepthook = self._previous_thread_excepthook

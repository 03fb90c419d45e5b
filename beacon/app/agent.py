"""Agent: one process, two uvicorn listeners (data-plane + control-plane) sharing one SystemSnapshot.

Both sockets are bound before either server starts, so a port conflict fails startup before any traffic.
Lifetimes are joined: if one listener stops on its own, the other is stopped and the agent fails."""

import asyncio
import contextlib
import logging
import signal
import socket
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI

from beacon.config.settings import ConfigError, get_server_config
from beacon.core.logging_utils import LogBuffer
from beacon.core.metrics import Metrics, get_metrics
from beacon.core.snapshot import SystemSnapshot
from beacon.status_server.app import create_api_app, create_orchestrator_app

logger = logging.getLogger(__name__)

API_LISTENER = "api"
ORCHESTRATOR_LISTENER = "orchestrator"


class ListenerBindError(OSError):
    """A listener could not bind its port."""

    def __init__(self, listener: str, host: str, port: int, cause: OSError):
        super().__init__(f"{listener} listener cannot bind {host}:{port}: {cause.strerror or cause}")
        self.errno = cause.errno
        self.listener = listener
        self.host = host
        self.port = port


class AgentError(RuntimeError):
    """A listener stopped or failed while the agent was running."""


class _Listener(uvicorn.Server):
    """uvicorn.Server without its own signal handling; the agent owns SIGINT/SIGTERM for both listeners."""

    def install_signal_handlers(self) -> None:
        return

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def bind_listener(listener: str, host: str, port: int) -> socket.socket:
    """Bind (not yet listen) a TCP socket; uvicorn calls listen() when it starts serving."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise ListenerBindError(listener, host, port, e) from e
    sock.set_inheritable(True)
    return sock


class Agent:
    """Owns the shared snapshot, metrics and both listeners."""

    def __init__(
        self,
        server_config: Dict[str, Any],
        snapshot: Optional[SystemSnapshot] = None,
        metrics: Optional[Metrics] = None,
        log_buffer: Optional[LogBuffer] = None,
    ):
        self._cfg = server_config
        self.snapshot = snapshot if snapshot is not None else SystemSnapshot()
        self.metrics = metrics if metrics is not None else get_metrics()
        stats = self.snapshot.get()
        if stats is not None:
            self.metrics.observe_snapshot(stats)

        timeout = server_config["request_timeout_sec"]
        self.api_app = create_api_app(self.snapshot, self.metrics, log_buffer, request_timeout_sec=timeout)
        self.orchestrator_app = create_orchestrator_app(self.metrics, request_timeout_sec=timeout)

        self._sockets: Dict[str, socket.socket] = {}
        self._servers: Dict[str, _Listener] = {}
        self._stop_requested = False
        self.ready = asyncio.Event()

    @property
    def ports(self) -> Dict[str, int]:
        """Actual bound ports (differs from config when 0 was requested)."""
        return {name: sock.getsockname()[1] for name, sock in self._sockets.items()}

    def _listener_specs(self) -> List[Tuple[str, FastAPI, int]]:
        return [
            (API_LISTENER, self.api_app, self._cfg["api_port"]),
            (ORCHESTRATOR_LISTENER, self.orchestrator_app, self._cfg["orchestrator_port"]),
        ]

    def bind(self) -> None:
        """Bind both ports. On any failure close what was bound and raise ListenerBindError."""
        host = self._cfg["host"]
        try:
            for name, _app, port in self._listener_specs():
                self._sockets[name] = bind_listener(name, host, port)
        except ListenerBindError:
            self.close()
            raise
        logger.info(
            "listeners bound host=%s api_port=%s orchestrator_port=%s",
            host,
            self.ports[API_LISTENER],
            self.ports[ORCHESTRATOR_LISTENER],
        )

    def close(self) -> None:
        for sock in self._sockets.values():
            sock.close()
        self._sockets.clear()

    def _make_server(self, app: FastAPI) -> _Listener:
        config = uvicorn.Config(
            app,
            host=self._cfg["host"],
            log_config=None,  # propagate to root handlers (stdout + LogBuffer)
            access_log=False,
            limit_concurrency=self._cfg["limit_concurrency"],
            timeout_keep_alive=self._cfg["timeout_keep_alive"],
            lifespan="off",
        )
        return _Listener(config)

    def stop(self) -> None:
        """First call: graceful stop of both listeners. Second call: force exit."""
        if self._stop_requested:
            for srv in self._servers.values():
                srv.force_exit = True
            return
        self._stop_requested = True
        for srv in self._servers.values():
            srv.should_exit = True

    async def _announce_ready(self) -> None:
        while not all(srv.started for srv in self._servers.values()):
            if self._stop_requested:
                return
            await asyncio.sleep(0.05)
        self.ready.set()
        ports = self.ports
        logger.info(
            "agent ready api=%s:%s orchestrator=%s:%s",
            self._cfg["host"],
            ports[API_LISTENER],
            self._cfg["host"],
            ports[ORCHESTRATOR_LISTENER],
        )
        self.metrics.log_snapshot()

    async def serve(self) -> None:
        """Run both listeners until stop(). Raises AgentError if either stops or fails on its own."""
        if not self._sockets:
            self.bind()
        tasks: Dict[str, asyncio.Task] = {}
        for name, app, _port in self._listener_specs():
            srv = self._make_server(app)
            self._servers[name] = srv
            tasks[name] = asyncio.create_task(srv.serve(sockets=[self._sockets[name]]), name=f"listener-{name}")
        ready_task = asyncio.create_task(self._announce_ready())
        try:
            await asyncio.wait(list(tasks.values()), return_when=asyncio.FIRST_COMPLETED)
            unexpected = not self._stop_requested
            self.stop()
            results = await asyncio.gather(*tasks.values(), return_exceptions=True)
        finally:
            self.stop()
            ready_task.cancel()
            self.close()

        failures = []
        for name, res in zip(tasks.keys(), results):
            if isinstance(res, BaseException):
                logger.error("%s listener failed: %r", name, res)
                failures.append(f"{name}: {res!r}")
        if failures:
            raise AgentError("listener failure: " + "; ".join(failures))
        if unexpected:
            raise AgentError("a listener stopped unexpectedly; agent stopped")
        logger.info("agent stopped")


async def _run_agent_main(agent: Agent) -> None:
    """Register signals, run the agent. SIGTERM/SIGINT call agent.stop() on the main loop."""
    loop = asyncio.get_running_loop()

    def _on_stop_signal(*_args: Any) -> None:
        logger.info("received SIGTERM/SIGINT → stopping listeners")
        agent.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _on_stop_signal)
        except (NotImplementedError, OSError, RuntimeError):
            pass  # add_signal_handler not supported on Windows / outside main thread
    await agent.serve()


def run_agent(config: Dict[str, Any], log_buffer: Optional[LogBuffer] = None) -> int:
    """Entry: validate config, bind both ports, serve until signalled. Returns the process exit code."""
    try:
        server_cfg = get_server_config(config)
    except ConfigError as e:
        logger.error("invalid config: %s", e)
        return 1
    agent = Agent(server_cfg, log_buffer=log_buffer)
    try:
        agent.bind()
    except ListenerBindError as e:
        logger.error("startup failed: %s", e)
        return 1
    try:
        asyncio.run(_run_agent_main(agent))
    except AgentError as e:
        logger.error("%s", e)
        return 1
    return 0

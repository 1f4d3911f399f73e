"""Agent server process supervision.

Launches ``opencode serve`` as a child process, discovers its listen
URL from the startup banner and tears it down again. The running
server is represented by a ServerHandle that callers pass around
explicitly; this module keeps no process state of its own.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import signal
import subprocess
import sys
from dataclasses import dataclass, field

from .config import AgentConfig
from .errors import ServerStartupError, ServerTimeoutError

logger = logging.getLogger(__name__)

LISTENING_MARKER = "opencode server listening on"
_LISTEN_URL_RE = re.compile(r"on\s+(https?://\S+)")
_READ_CHUNK = 4096
# npm installs put the CLI here when it is not on PATH.
_LOCAL_OPENCODE = os.path.join("node_modules", ".bin", "opencode")


@dataclass
class ServerHandle:
    """A running agent server: its process, address and captured output."""
    process: asyncio.subprocess.Process
    url: str | None = None
    stdout_chunks: list[str] = field(default_factory=list)
    stderr_chunks: list[str] = field(default_factory=list)
    drain_tasks: list[asyncio.Task] = field(default_factory=list, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None

    @property
    def stdout_text(self) -> str:
        return "".join(self.stdout_chunks)

    @property
    def stderr_text(self) -> str:
        return "".join(self.stderr_chunks)


def find_listen_url(output: str) -> str | None:
    """Extract the URL from the server's ``listening on`` banner."""
    if LISTENING_MARKER not in output:
        return None
    match = _LISTEN_URL_RE.search(output, output.index(LISTENING_MARKER))
    if match is None:
        return None
    return match.group(1)


def resolve_server_command(command: str) -> str:
    """Prefer *command* on PATH, then the project-local npm binary."""
    if shutil.which(command):
        return command
    if os.path.isfile(_LOCAL_OPENCODE):
        logger.debug("%s not on PATH; using %s", command, _LOCAL_OPENCODE)
        return _LOCAL_OPENCODE
    return command


def build_server_command(config: AgentConfig) -> list[str]:
    return [
        resolve_server_command(config.opencode_command),
        "serve",
        f"--port={config.port}",
        f"--hostname={config.host}",
    ]


def build_server_env(model_hint: str) -> dict[str, str]:
    env = os.environ.copy()
    # Keep user config out of the server; everything is sent per request.
    env["OPENCODE_CONFIG_CONTENT"] = "{}"
    env["OPENCODE_MODEL"] = model_hint
    return env


def _pids_listening_on(port: int) -> list[int]:
    if sys.platform == "win32":
        out = subprocess.check_output(
            [
                "powershell", "-Command",
                f"Get-NetTCPConnection -LocalPort {port} -ErrorAction SilentlyContinue"
                " | Select-Object -ExpandProperty OwningProcess",
            ],
            text=True,
            stderr=subprocess.DEVNULL,
        )
    elif shutil.which("lsof"):
        out = subprocess.run(
            ["lsof", "-t", f"-iTCP:{port}", "-sTCP:LISTEN"],
            capture_output=True,
            text=True,
        ).stdout
    elif shutil.which("fuser"):
        out = subprocess.run(
            ["fuser", f"{port}/tcp"],
            capture_output=True,
            text=True,
        ).stdout
    else:
        return []
    pids: list[int] = []
    for token in out.split():
        try:
            pid = int(token)
        except ValueError:
            continue
        if pid > 0 and pid != os.getpid() and pid not in pids:
            pids.append(pid)
    return pids


def free_port(port: int) -> int:
    """Kill whatever listens on *port*. Best-effort; returns kill count.

    Any failure is treated as "port already free".
    """
    try:
        pids = _pids_listening_on(port)
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Could not inspect port %d: %s", port, exc)
        return 0

    killed = 0
    for pid in pids:
        try:
            if sys.platform == "win32":
                subprocess.run(
                    ["taskkill", "/PID", str(pid), "/F"],
                    capture_output=True,
                )
            else:
                os.kill(pid, signal.SIGTERM)
            killed += 1
            logger.info("Freed port %d by terminating pid=%d", port, pid)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("Could not terminate pid=%d: %s", pid, exc)
    return killed


async def _drain(stream: asyncio.StreamReader | None, sink: list[str]) -> None:
    """Read *stream* until EOF so the child never blocks on a full pipe."""
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        sink.append(chunk.decode("utf-8", errors="replace"))


async def _wait_for_ready(
    handle: ServerHandle,
    timeout: float,
    poll_interval: float,
) -> str:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        url = find_listen_url(handle.stdout_text)
        if url:
            return url
        if handle.process.returncode is not None:
            # Let the drains pick up whatever the child wrote last.
            await asyncio.wait(handle.drain_tasks, timeout=1.0)
            raise ServerStartupError(
                handle.stderr_text.strip(), handle.process.returncode,
            )
        if loop.time() >= deadline:
            raise ServerTimeoutError(timeout)
        await asyncio.sleep(poll_interval)


async def spawn_server(config: AgentConfig, model_hint: str) -> ServerHandle:
    """Start the agent server and wait until it announces its URL.

    Raises ServerStartupError if the process exits (or cannot be
    executed) before readiness and ServerTimeoutError if the banner
    does not appear within ``config.startup_timeout_seconds``.
    """
    if await asyncio.to_thread(free_port, config.port):
        # Give the old listener time to release the socket.
        await asyncio.sleep(config.stop_grace_seconds)

    cmd = build_server_command(config)
    logger.info("Starting agent server: %s", " ".join(cmd))
    try:
        # Argument list, no shell.
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=build_server_env(model_hint),
        )
    except FileNotFoundError as exc:
        raise ServerStartupError(
            f"'{cmd[0]}' not found. Install the opencode CLI first."
        ) from exc

    handle = ServerHandle(process=proc)
    handle.drain_tasks = [
        asyncio.create_task(_drain(proc.stdout, handle.stdout_chunks)),
        asyncio.create_task(_drain(proc.stderr, handle.stderr_chunks)),
    ]

    try:
        handle.url = await _wait_for_ready(
            handle,
            config.startup_timeout_seconds,
            config.startup_poll_interval_seconds,
        )
    except BaseException:
        await _terminate(handle, grace_seconds=0.0)
        raise

    logger.info("Agent server started at %s (pid=%d)", handle.url, handle.pid)
    return handle


async def _terminate(handle: ServerHandle, grace_seconds: float) -> None:
    proc = handle.process
    if proc.returncode is None:
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        await asyncio.sleep(grace_seconds)
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        try:
            await asyncio.wait_for(proc.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.debug("Agent server pid=%d did not exit after kill", proc.pid)

    for task in handle.drain_tasks:
        task.cancel()
    await asyncio.gather(*handle.drain_tasks, return_exceptions=True)


async def stop_server(handle: ServerHandle | None, grace_seconds: float = 1.0) -> None:
    """Terminate the server and wait *grace_seconds* for the port to free.

    No-op for None or an already exited process.
    """
    if handle is None:
        return
    if not handle.is_running:
        await _terminate(handle, grace_seconds=0.0)
        return
    pid = handle.pid
    await _terminate(handle, grace_seconds=grace_seconds)
    logger.info("Agent server stopped (pid=%d)", pid)

"""Local mitmweb process supervision.

Handles:
- Install detection and version query
- Detached spawn with a PID file in the working directory
- Readiness polling of the web UI
- SIGTERM-then-SIGKILL shutdown
- Best-effort installation via pipx or pip
"""

from __future__ import annotations

__all__ = [
    "MitmwebSupervisor",
    "auto_install_mitmproxy",
    "get_mitmproxy_version",
    "is_mitmproxy_installed",
]

import asyncio
import errno
import logging
import os
import re
import shutil
import signal
import subprocess
import sys
import time
import webbrowser
from pathlib import Path

import httpx

from caddy_tap.constants import (
    APP_NAME,
    MITMWEB_BINARY,
    MITMWEB_PID_FILENAME,
    MITMWEB_STARTUP_POLL_INTERVAL_SECONDS,
    MITMWEB_STARTUP_TIMEOUT_SECONDS,
    MITMWEB_STOP_POLL_INTERVAL_SECONDS,
    MITMWEB_STOP_TIMEOUT_SECONDS,
)
from caddy_tap.exceptions import (
    MitmproxyAlreadyRunningError,
    MitmproxyNotInstalledError,
    MitmproxyStartError,
)
from caddy_tap.log_config import SystemEvent, log_event
from caddy_tap.mitm.models import MitmwebOptions, MitmwebStatus
from caddy_tap.utils.file_helpers import read_pid_file, write_pid_file

_logger = logging.getLogger(f"{APP_NAME}.mitm.supervisor")

_VERSION_PATTERN = re.compile(r"(\d+\.\d+\.\d+)")

# Bind-all addresses are probed via loopback
_WILDCARD_ADDRESSES = frozenset({"0.0.0.0", "::", ""})


def is_mitmproxy_installed() -> bool:
    """Return True if the mitmweb executable is on PATH."""
    return shutil.which(MITMWEB_BINARY) is not None


def get_mitmproxy_version() -> str | None:
    """Return the installed mitmproxy version (e.g. "10.1.6"), or None."""
    if not is_mitmproxy_installed():
        return None

    try:
        result = subprocess.run(
            [MITMWEB_BINARY, "--version"],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None

    if result.returncode != 0:
        return None

    match = _VERSION_PATTERN.search(result.stdout)
    return match.group(1) if match else None


def auto_install_mitmproxy() -> bool:
    """Install mitmproxy, preferring pipx and falling back to pip --user.

    Installer output goes straight to the terminal.

    Returns:
        True if one of the installers succeeded.
    """
    commands: list[list[str]] = []
    if shutil.which("pipx") is not None:
        commands.append(["pipx", "install", "mitmproxy"])
    commands.append([sys.executable, "-m", "pip", "install", "--user", "mitmproxy"])

    for command in commands:
        try:
            result = subprocess.run(command, check=False)
        except OSError as e:
            log_event(
                logging.WARNING,
                SystemEvent(
                    event="mitmproxy_install_error",
                    message=f"Failed to run {command[0]}: {e}",
                    error_type=type(e).__name__,
                    error_message=str(e),
                ),
                _logger,
            )
            continue

        if result.returncode == 0:
            log_event(
                logging.INFO,
                SystemEvent(
                    event="mitmproxy_installed",
                    message="MITMproxy installed successfully",
                    details={"command": " ".join(command)},
                ),
                _logger,
            )
            return True

    log_event(
        logging.WARNING,
        SystemEvent(event="mitmproxy_install_failed", message="Failed to install mitmproxy"),
        _logger,
    )
    return False


def _is_process_alive(pid: int) -> bool:
    """Check process existence with signal 0, reaping it if it is our child."""
    try:
        reaped, _ = os.waitpid(pid, os.WNOHANG)
        if reaped == pid:
            return False
    except ChildProcessError:
        pass  # Not our child (started by another invocation)

    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user
        return True
    except OSError as e:
        if e.errno == errno.ESRCH:
            return False
        raise


class MitmwebSupervisor:
    """Starts, stops, and reports on one local mitmweb process.

    State lives in ``<working_dir>/mitmweb.pid`` so separate CLI
    invocations agree on which process is running.
    """

    def __init__(
        self,
        options: MitmwebOptions | None = None,
        *,
        startup_timeout_seconds: float = MITMWEB_STARTUP_TIMEOUT_SECONDS,
        stop_timeout_seconds: float = MITMWEB_STOP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            options: Launch options (defaults if None).
            startup_timeout_seconds: How long to wait for the web UI.
            stop_timeout_seconds: SIGTERM grace period before SIGKILL.
            transport: Optional httpx transport for readiness probes.
        """
        self.options = options or MitmwebOptions()
        self.startup_timeout_seconds = startup_timeout_seconds
        self.stop_timeout_seconds = stop_timeout_seconds
        self._transport = transport

    @property
    def pid_path(self) -> Path:
        working_dir = Path(self.options.working_dir) if self.options.working_dir else Path.cwd()
        return working_dir / MITMWEB_PID_FILENAME

    def build_command(self) -> list[str]:
        """Return the mitmweb argv for the configured options."""
        command = [
            MITMWEB_BINARY,
            "--web-port",
            str(self.options.web_port),
            "--listen-port",
            str(self.options.proxy_port),
            "--listen-host",
            self.options.listen_address,
            # Browser opening is handled here once the UI answers
            "--no-web-open-browser",
        ]
        for script in self.options.scripts:
            command.extend(["-s", script])
        return command

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> MitmwebStatus:
        """Report whether the PID file names a live process.

        A PID file naming a dead process (or holding garbage) is removed.
        """
        path = self.pid_path
        if not path.exists():
            return MitmwebStatus(running=False)

        pid = read_pid_file(path)
        if pid is None or not _is_process_alive(pid):
            path.unlink(missing_ok=True)
            log_event(
                logging.INFO,
                SystemEvent(
                    event="stale_pid_removed",
                    message=f"Removed stale PID file: {path}",
                    pid=pid,
                ),
                _logger,
            )
            return MitmwebStatus(running=False)

        return MitmwebStatus(
            running=True,
            pid=pid,
            web_url=self.options.web_url,
            proxy_url=self.options.proxy_url,
        )

    # =========================================================================
    # Start
    # =========================================================================

    async def start(self) -> MitmwebStatus:
        """Spawn mitmweb detached and wait until its web UI answers.

        Returns:
            Status of the running process.

        Raises:
            MitmproxyNotInstalledError: mitmweb is not on PATH.
            MitmproxyAlreadyRunningError: PID file names a live process.
            MitmproxyStartError: Spawn failed, process exited early, or the
                UI did not answer within the startup timeout.
        """
        if not is_mitmproxy_installed():
            raise MitmproxyNotInstalledError()

        current = self.status()
        if current.running and current.pid is not None:
            raise MitmproxyAlreadyRunningError(current.pid)

        command = self.build_command()
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise MitmproxyStartError(f"Failed to spawn mitmweb: {e}") from e

        write_pid_file(self.pid_path, process.pid)

        try:
            await self._wait_until_ready(process)
        except BaseException:
            # Also on cancellation: never leave a half-started mitmweb behind
            self._abort_start(process)
            raise

        log_event(
            logging.INFO,
            SystemEvent(
                event="mitmweb_started",
                message=f"mitmweb started (pid {process.pid})",
                pid=process.pid,
                details={"web_url": self.options.web_url, "proxy_url": self.options.proxy_url},
            ),
            _logger,
        )

        if self.options.open_browser:
            self._open_browser(self.options.web_url)

        return MitmwebStatus(
            running=True,
            pid=process.pid,
            web_url=self.options.web_url,
            proxy_url=self.options.proxy_url,
        )

    def _abort_start(self, process: subprocess.Popen[bytes]) -> None:
        """Stop and reap a process that never became ready, then drop its PID file."""
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=MITMWEB_STOP_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait(timeout=MITMWEB_STOP_TIMEOUT_SECONDS)
        self.pid_path.unlink(missing_ok=True)

    def _probe_url(self) -> str:
        host = self.options.listen_address
        if host in _WILDCARD_ADDRESSES:
            host = "127.0.0.1"
        return f"http://{host}:{self.options.web_port}"

    async def _wait_until_ready(self, process: subprocess.Popen[bytes]) -> None:
        url = self._probe_url()
        deadline = time.monotonic() + self.startup_timeout_seconds

        async with httpx.AsyncClient(timeout=MITMWEB_STARTUP_POLL_INTERVAL_SECONDS, transport=self._transport) as client:
            while time.monotonic() < deadline:
                exit_code = process.poll()
                if exit_code is not None:
                    raise MitmproxyStartError(
                        f"mitmweb exited during startup with code {exit_code}",
                        exit_code=exit_code,
                    )
                try:
                    response = await client.get(url)
                    if response.is_success:
                        return
                except httpx.TransportError:
                    pass  # Not listening yet
                await asyncio.sleep(MITMWEB_STARTUP_POLL_INTERVAL_SECONDS)

        raise MitmproxyStartError(f"mitmweb failed to start within {self.startup_timeout_seconds}s")

    @staticmethod
    def _open_browser(url: str) -> None:
        try:
            webbrowser.open(url)
        except webbrowser.Error as e:
            log_event(
                logging.WARNING,
                SystemEvent(
                    event="browser_open_failed",
                    message=f"Could not open browser, visit {url}",
                    error_type=type(e).__name__,
                    error_message=str(e),
                ),
                _logger,
            )

    # =========================================================================
    # Stop
    # =========================================================================

    async def stop(self) -> bool:
        """Stop the process named by the PID file.

        Sends SIGTERM, waits up to the stop timeout, then SIGKILL.

        Returns:
            True if a running process was stopped, False if none was running.
        """
        current = self.status()
        if not current.running or current.pid is None:
            return False

        pid = current.pid
        forced = False
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            pass  # Exited between status check and signal
        else:
            deadline = time.monotonic() + self.stop_timeout_seconds
            while _is_process_alive(pid) and time.monotonic() < deadline:
                await asyncio.sleep(MITMWEB_STOP_POLL_INTERVAL_SECONDS)

            if _is_process_alive(pid):
                forced = True
                try:
                    os.kill(pid, signal.SIGKILL)
                except ProcessLookupError:
                    pass

        self.pid_path.unlink(missing_ok=True)
        log_event(
            logging.INFO,
            SystemEvent(
                event="mitmweb_stopped",
                message=f"mitmweb stopped (pid {pid})",
                pid=pid,
                details={"forced": forced},
            ),
            _logger,
        )
        return True

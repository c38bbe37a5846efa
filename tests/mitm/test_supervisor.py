"""Tests for mitmweb process supervision.

No real process is spawned: Popen, os.kill and liveness checks are
patched, and the readiness probe runs against an httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import os
import signal
import subprocess
import sys
import webbrowser
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from caddy_tap.exceptions import (
    MitmproxyAlreadyRunningError,
    MitmproxyNotInstalledError,
    MitmproxyStartError,
)
from caddy_tap.mitm.models import MitmwebOptions
from caddy_tap.mitm.supervisor import (
    MitmwebSupervisor,
    _is_process_alive,
    auto_install_mitmproxy,
    get_mitmproxy_version,
    is_mitmproxy_installed,
)

MODULE = "caddy_tap.mitm.supervisor"


@pytest.fixture
def options(tmp_path: Path) -> MitmwebOptions:
    """Launch options with the PID file in a temp directory."""
    return MitmwebOptions(web_port=9081, proxy_port=9080, working_dir=str(tmp_path))


@pytest.fixture
def fake_process() -> MagicMock:
    """A Popen result that stays alive."""
    process = MagicMock(spec=subprocess.Popen)
    process.pid = 4242
    process.poll.return_value = None
    return process


def _ready_transport(seen: list[httpx.Request] | None = None, status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, text="<html>mitmweb</html>")

    return httpx.MockTransport(handler)


class TestInstallDetection:
    """Tests for install detection, version query, and auto install."""

    def test_installed_when_on_path(self) -> None:
        with patch(f"{MODULE}.shutil.which", return_value="/usr/bin/mitmweb"):
            assert is_mitmproxy_installed() is True
        with patch(f"{MODULE}.shutil.which", return_value=None):
            assert is_mitmproxy_installed() is False

    def test_version_parsed(self) -> None:
        result = MagicMock(returncode=0, stdout="Mitmproxy: 10.1.6\nPython: 3.12.1\n")
        with (
            patch(f"{MODULE}.shutil.which", return_value="/usr/bin/mitmweb"),
            patch(f"{MODULE}.subprocess.run", return_value=result),
        ):
            assert get_mitmproxy_version() == "10.1.6"

    def test_version_none_when_not_installed(self) -> None:
        with patch(f"{MODULE}.shutil.which", return_value=None):
            assert get_mitmproxy_version() is None

    def test_version_none_on_failure(self) -> None:
        with (
            patch(f"{MODULE}.shutil.which", return_value="/usr/bin/mitmweb"),
            patch(f"{MODULE}.subprocess.run", side_effect=subprocess.TimeoutExpired("mitmweb", 10)),
        ):
            assert get_mitmproxy_version() is None

    def test_auto_install_prefers_pipx(self) -> None:
        with (
            patch(f"{MODULE}.shutil.which", return_value="/usr/bin/pipx"),
            patch(f"{MODULE}.subprocess.run", return_value=MagicMock(returncode=0)) as mock_run,
        ):
            assert auto_install_mitmproxy() is True

        mock_run.assert_called_once_with(["pipx", "install", "mitmproxy"], check=False)

    def test_auto_install_falls_back_to_pip(self) -> None:
        with (
            patch(f"{MODULE}.shutil.which", return_value=None),
            patch(f"{MODULE}.subprocess.run", return_value=MagicMock(returncode=0)) as mock_run,
        ):
            assert auto_install_mitmproxy() is True

        command = mock_run.call_args.args[0]
        assert command == [sys.executable, "-m", "pip", "install", "--user", "mitmproxy"]

    def test_auto_install_failure(self) -> None:
        with (
            patch(f"{MODULE}.shutil.which", return_value="/usr/bin/pipx"),
            patch(f"{MODULE}.subprocess.run", return_value=MagicMock(returncode=1)) as mock_run,
        ):
            assert auto_install_mitmproxy() is False

        assert mock_run.call_count == 2


class TestProcessAlive:
    """Tests for the signal-0 liveness check."""

    def test_own_process_is_alive(self) -> None:
        assert _is_process_alive(os.getpid()) is True

    def test_missing_process(self) -> None:
        with (
            patch(f"{MODULE}.os.waitpid", side_effect=ChildProcessError),
            patch(f"{MODULE}.os.kill", side_effect=ProcessLookupError),
        ):
            assert _is_process_alive(999999) is False

    def test_other_users_process(self) -> None:
        with (
            patch(f"{MODULE}.os.waitpid", side_effect=ChildProcessError),
            patch(f"{MODULE}.os.kill", side_effect=PermissionError),
        ):
            assert _is_process_alive(1) is True

    def test_reaped_child(self) -> None:
        with patch(f"{MODULE}.os.waitpid", return_value=(4242, 0)):
            assert _is_process_alive(4242) is False


class TestBuildCommand:
    """Tests for the mitmweb argv."""

    def test_command(self, options: MitmwebOptions) -> None:
        options = options.model_copy(update={"scripts": ["addon.py", "other.py"]})
        command = MitmwebSupervisor(options).build_command()

        assert command == [
            "mitmweb",
            "--web-port",
            "9081",
            "--listen-port",
            "9080",
            "--listen-host",
            "127.0.0.1",
            "--no-web-open-browser",
            "-s",
            "addon.py",
            "-s",
            "other.py",
        ]


class TestStatus:
    """Tests for PID-file based status."""

    def test_no_pid_file(self, options: MitmwebOptions) -> None:
        assert MitmwebSupervisor(options).status().running is False

    def test_live_process(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options)
        supervisor.pid_path.write_text("4242")

        with patch(f"{MODULE}._is_process_alive", return_value=True):
            status = supervisor.status()

        assert status.running is True
        assert status.pid == 4242
        assert status.web_url == "http://127.0.0.1:9081"
        assert status.proxy_url == "http://127.0.0.1:9080"

    def test_stale_pid_removed(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options)
        supervisor.pid_path.write_text("4242")

        with patch(f"{MODULE}._is_process_alive", return_value=False):
            assert supervisor.status().running is False

        assert not supervisor.pid_path.exists()

    def test_garbage_pid_removed(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options)
        supervisor.pid_path.write_text("not-a-pid")

        assert supervisor.status().running is False
        assert not supervisor.pid_path.exists()


class TestStart:
    """Tests for spawning and readiness polling."""

    async def test_start_success(self, options: MitmwebOptions, fake_process: MagicMock) -> None:
        supervisor = MitmwebSupervisor(options, transport=_ready_transport())

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process) as mock_popen,
        ):
            status = await supervisor.start()

        assert status.running is True
        assert status.pid == 4242
        assert supervisor.pid_path.read_text() == "4242"
        assert mock_popen.call_args.args[0] == supervisor.build_command()
        assert mock_popen.call_args.kwargs["start_new_session"] is True

    async def test_probe_uses_loopback_for_wildcard(self, tmp_path: Path, fake_process: MagicMock) -> None:
        seen: list[httpx.Request] = []
        options = MitmwebOptions(web_port=9081, listen_address="0.0.0.0", working_dir=str(tmp_path))
        supervisor = MitmwebSupervisor(options, transport=_ready_transport(seen))

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process),
        ):
            await supervisor.start()

        assert seen[0].url.host == "127.0.0.1"
        assert seen[0].url.port == 9081

    async def test_not_installed(self, options: MitmwebOptions) -> None:
        with patch(f"{MODULE}.is_mitmproxy_installed", return_value=False):
            with pytest.raises(MitmproxyNotInstalledError):
                await MitmwebSupervisor(options).start()

    async def test_already_running(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options)
        supervisor.pid_path.write_text("4242")

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}._is_process_alive", return_value=True),
            patch(f"{MODULE}.subprocess.Popen") as mock_popen,
        ):
            with pytest.raises(MitmproxyAlreadyRunningError) as exc_info:
                await supervisor.start()

        assert exc_info.value.pid == 4242
        mock_popen.assert_not_called()

    async def test_spawn_failure(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options)

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", side_effect=FileNotFoundError("mitmweb")),
        ):
            with pytest.raises(MitmproxyStartError):
                await supervisor.start()

        assert not supervisor.pid_path.exists()

    async def test_early_exit(self, options: MitmwebOptions, fake_process: MagicMock) -> None:
        fake_process.poll.return_value = 2
        supervisor = MitmwebSupervisor(options, transport=_ready_transport())

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process),
        ):
            with pytest.raises(MitmproxyStartError) as exc_info:
                await supervisor.start()

        assert exc_info.value.exit_code == 2
        assert not supervisor.pid_path.exists()
        fake_process.terminate.assert_not_called()

    async def test_readiness_timeout_terminates(self, options: MitmwebOptions, fake_process: MagicMock) -> None:
        supervisor = MitmwebSupervisor(
            options,
            startup_timeout_seconds=0.1,
            transport=_ready_transport(status=503),
        )

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process),
        ):
            with pytest.raises(MitmproxyStartError, match="failed to start"):
                await supervisor.start()

        fake_process.terminate.assert_called_once()
        fake_process.wait.assert_called_once()
        fake_process.kill.assert_not_called()
        assert not supervisor.pid_path.exists()

    async def test_unresponsive_process_killed(self, options: MitmwebOptions, fake_process: MagicMock) -> None:
        """A process ignoring SIGTERM after a failed start is killed and reaped."""
        fake_process.wait.side_effect = [subprocess.TimeoutExpired("mitmweb", 5), 0]
        supervisor = MitmwebSupervisor(
            options,
            startup_timeout_seconds=0.1,
            transport=_ready_transport(status=503),
        )

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process),
        ):
            with pytest.raises(MitmproxyStartError):
                await supervisor.start()

        fake_process.kill.assert_called_once()
        assert fake_process.wait.call_count == 2

    async def test_cancelled_start_cleans_up(self, options: MitmwebOptions, fake_process: MagicMock) -> None:
        supervisor = MitmwebSupervisor(options, transport=_ready_transport())

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process),
            patch.object(MitmwebSupervisor, "_wait_until_ready", side_effect=asyncio.CancelledError),
        ):
            with pytest.raises(asyncio.CancelledError):
                await supervisor.start()

        fake_process.terminate.assert_called_once()
        fake_process.wait.assert_called_once()
        assert not supervisor.pid_path.exists()

    async def test_opens_browser(self, options: MitmwebOptions, fake_process: MagicMock) -> None:
        options = options.model_copy(update={"open_browser": True})
        supervisor = MitmwebSupervisor(options, transport=_ready_transport())

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process),
            patch(f"{MODULE}.webbrowser.open") as mock_open,
        ):
            await supervisor.start()

        mock_open.assert_called_once_with("http://127.0.0.1:9081")

    async def test_browser_failure_is_not_fatal(self, options: MitmwebOptions, fake_process: MagicMock) -> None:
        options = options.model_copy(update={"open_browser": True})
        supervisor = MitmwebSupervisor(options, transport=_ready_transport())

        with (
            patch(f"{MODULE}.is_mitmproxy_installed", return_value=True),
            patch(f"{MODULE}.subprocess.Popen", return_value=fake_process),
            patch(f"{MODULE}.webbrowser.open", side_effect=webbrowser.Error("no browser")),
        ):
            status = await supervisor.start()

        assert status.running is True


class TestStop:
    """Tests for SIGTERM/SIGKILL shutdown."""

    async def test_not_running(self, options: MitmwebOptions) -> None:
        assert await MitmwebSupervisor(options).stop() is False

    async def test_graceful(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options)
        supervisor.pid_path.write_text("4242")

        with (
            patch(f"{MODULE}._is_process_alive", side_effect=[True, False, False]),
            patch(f"{MODULE}.os.kill") as mock_kill,
        ):
            assert await supervisor.stop() is True

        mock_kill.assert_called_once_with(4242, signal.SIGTERM)
        assert not supervisor.pid_path.exists()

    async def test_force_kill_after_timeout(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options, stop_timeout_seconds=0)
        supervisor.pid_path.write_text("4242")

        with (
            patch(f"{MODULE}._is_process_alive", return_value=True),
            patch(f"{MODULE}.os.kill") as mock_kill,
        ):
            assert await supervisor.stop() is True

        assert [c.args for c in mock_kill.call_args_list] == [(4242, signal.SIGTERM), (4242, signal.SIGKILL)]
        assert not supervisor.pid_path.exists()

    async def test_exited_before_signal(self, options: MitmwebOptions) -> None:
        supervisor = MitmwebSupervisor(options)
        supervisor.pid_path.write_text("4242")

        with (
            patch(f"{MODULE}._is_process_alive", return_value=True),
            patch(f"{MODULE}.os.kill", side_effect=ProcessLookupError) as mock_kill,
        ):
            assert await supervisor.stop() is True

        mock_kill.assert_called_once_with(4242, signal.SIGTERM)
        assert not supervisor.pid_path.exists()

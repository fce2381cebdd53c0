"""Tests for the SSH transport command construction and connection checks."""

from unittest.mock import patch

import pytest

from skillmesh.errors import RemoteCommandError
from skillmesh.models import SSHConnection
from skillmesh.process import CommandResult
from skillmesh.remote.ssh import CONNECTED_MARKER, SSHTransport, check_connection


def _connection(**overrides) -> SSHConnection:
    values = {
        "id": "abc",
        "name": "box",
        "host": "box.example.com",
        "port": 2222,
        "username": "me",
    }
    values.update(overrides)
    return SSHConnection(**values)


class TestCommandConstruction:
    def test_ssh_command_with_agent(self):
        argv = SSHTransport(_connection()).ssh_command("echo hi")
        assert argv == [
            "ssh",
            "-p",
            "2222",
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-o",
            "ConnectTimeout=10",
            "me@box.example.com",
            "echo hi",
        ]

    def test_key_without_passphrase_uses_batch_mode(self):
        argv = SSHTransport(_connection(private_key_path="/keys/id_ed25519")).ssh_command("true")
        i = argv.index("-i")
        assert argv[i + 1] == "/keys/id_ed25519"
        assert "BatchMode=yes" in argv

    def test_key_with_passphrase_is_interactive(self):
        conn = _connection(private_key_path="/keys/id_ed25519", passphrase="secret")
        argv = SSHTransport(conn).ssh_command("true")
        assert "-i" in argv
        assert "BatchMode=yes" not in argv

    def test_key_path_expands_home(self, isolated_home):
        argv = SSHTransport(_connection(private_key_path="~/.ssh/id_rsa")).ssh_command("true")
        assert argv[argv.index("-i") + 1] == str(isolated_home / ".ssh" / "id_rsa")

    def test_password_wraps_with_sshpass(self):
        conn = _connection(auth_method="password", password="pw")
        argv = SSHTransport(conn).ssh_command("true")
        assert argv[:4] == ["sshpass", "-p", "pw", "ssh"]
        assert "-i" not in argv

    def test_scp_uses_upper_case_port_flag(self):
        argv = SSHTransport(_connection()).scp_command("/tmp/a", "~/b", recursive=True)
        assert argv[0] == "scp"
        assert argv[1:3] == ["-P", "2222"]
        assert "-r" in argv
        assert argv[-2:] == ["/tmp/a", "me@box.example.com:~/b"]


class TestRun:
    @patch("skillmesh.remote.ssh.run_command")
    def test_run_passes_input_and_timeout(self, mock_run):
        mock_run.return_value = CommandResult(0, "ok\n", "")
        result = SSHTransport(_connection()).run("cat > x", input="data", timeout=5)
        assert result.stdout == "ok\n"
        args, kwargs = mock_run.call_args
        assert args[0][-1] == "cat > x"
        assert args[1] == 5
        assert kwargs["input"] == "data"

    @patch("skillmesh.remote.ssh.run_command", side_effect=FileNotFoundError)
    def test_missing_ssh(self, mock_run):
        with pytest.raises(RemoteCommandError, match="ssh is not installed"):
            SSHTransport(_connection()).run("true")

    @patch("skillmesh.remote.ssh.run_command", side_effect=FileNotFoundError)
    def test_missing_sshpass(self, mock_run):
        conn = _connection(auth_method="password", password="pw")
        with pytest.raises(RemoteCommandError, match="sshpass is not installed"):
            SSHTransport(conn).run("true")


class TestUploads:
    @patch("skillmesh.remote.ssh.run_command")
    def test_upload_dir_prepares_then_copies(self, mock_run, tmp_path):
        mock_run.return_value = CommandResult(0, "", "")
        SSHTransport(_connection()).upload_dir(tmp_path, "~/.skillmesh/skills/demo")

        prepare, copy = [c.args[0] for c in mock_run.call_args_list]
        assert prepare[0] == "ssh"
        assert "rm -rf \"$HOME\"/.skillmesh/skills/demo" in prepare[-1]
        assert copy[0] == "scp"
        assert "-r" in copy
        assert copy[-1] == "me@box.example.com:~/.skillmesh/skills/demo"

    @patch("skillmesh.remote.ssh.run_command")
    def test_scp_failure(self, mock_run, tmp_path):
        mock_run.side_effect = [
            CommandResult(0, "", ""),
            CommandResult(1, "", "Permission denied\n"),
        ]
        with pytest.raises(RemoteCommandError) as exc_info:
            SSHTransport(_connection()).upload_file(tmp_path / "f", "~/f")
        assert exc_info.value.stderr == "Permission denied"

    @patch("skillmesh.remote.ssh.run_command")
    def test_upload_pattern_skips_failed_files(self, mock_run, tmp_path):
        (tmp_path / "a.md").write_text("a")
        (tmp_path / "b.md").write_text("b")
        (tmp_path / "c.txt").write_text("c")

        def fake(argv, timeout, **kwargs):
            if argv[0] == "scp" and argv[-2].endswith("a.md"):
                return CommandResult(1, "", "disk full")
            return CommandResult(0, "", "")

        mock_run.side_effect = fake
        synced = SSHTransport(_connection()).upload_pattern(str(tmp_path / "*.md"), "~/cmds/")
        assert synced == [f"{tmp_path / 'b.md'} -> ~/cmds/b.md"]

    @patch("skillmesh.remote.ssh.run_command")
    def test_upload_pattern_without_matches(self, mock_run, tmp_path):
        assert SSHTransport(_connection()).upload_pattern(str(tmp_path / "*.md"), "~/x") == []
        mock_run.assert_not_called()


class TestCheckConnection:
    @patch("skillmesh.remote.ssh.run_command")
    def test_connected(self, mock_run):
        mock_run.return_value = CommandResult(
            0, f"{CONNECTED_MARKER}\nLinux box 6.1.0 x86_64 GNU/Linux\n", ""
        )
        result = check_connection(_connection())
        assert result.connected
        assert result.server_info == "Linux box 6.1.0 x86_64 GNU/Linux"
        assert result.error is None

    @patch("skillmesh.remote.ssh.run_command")
    def test_refused(self, mock_run):
        mock_run.return_value = CommandResult(255, "", "ssh: connect to host box port 2222: Connection refused\n")
        result = check_connection(_connection())
        assert not result.connected
        assert "Connection refused" in result.error

    @patch("skillmesh.remote.ssh.run_command")
    def test_no_marker_without_stderr(self, mock_run):
        mock_run.return_value = CommandResult(0, "", "")
        result = check_connection(_connection())
        assert result == type(result)(connected=False, error="Connection failed")

    @patch("skillmesh.remote.ssh.run_command", side_effect=FileNotFoundError)
    def test_missing_client(self, mock_run):
        result = check_connection(_connection())
        assert not result.connected
        assert result.error == "ssh is not installed"

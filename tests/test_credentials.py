"""Tests for credential lookup through git."""

import subprocess
from unittest.mock import patch

import pytest

from gitcatalog.credentials import (
    TOKEN_ENV,
    USERNAME_ENV,
    CredentialError,
    Credentials,
    get_credentials,
    parse_credential_output,
)


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture(autouse=True)
def no_env_token(monkeypatch):
    monkeypatch.delenv(TOKEN_ENV, raising=False)
    monkeypatch.delenv(USERNAME_ENV, raising=False)


class TestParseCredentialOutput:
    """Tests for parse_credential_output."""

    def test_key_values(self):
        """Test key=value lines are parsed, values kept verbatim."""
        output = "protocol=https\nhost=github.com\nusername=alice\npassword=ghp_a=b\n"
        values = parse_credential_output(output)

        assert values["username"] == "alice"
        assert values["password"] == "ghp_a=b"

    def test_ignores_junk(self):
        """Test lines without '=' are ignored."""
        assert parse_credential_output("warning\n\n=x\n") == {}


class TestGetCredentials:
    """Tests for get_credentials."""

    @patch("gitcatalog.credentials.subprocess.run")
    @patch("gitcatalog.credentials.shutil.which", return_value="/usr/bin/git")
    def test_helper_success(self, mock_which, mock_run):
        """Test username and token come from git credential fill."""
        mock_run.return_value = completed("protocol=https\nhost=github.com\nusername=alice\npassword=tok\n")

        creds = get_credentials("https", "github.com")

        assert creds == Credentials("alice", "tok")
        args, kwargs = mock_run.call_args
        assert args[0] == ["git", "credential", "fill"]
        assert kwargs["input"] == "protocol=https\nhost=github.com\n\n"
        assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"

    @patch("gitcatalog.credentials.shutil.which", return_value=None)
    def test_helper_missing(self, mock_which):
        """Test a missing git binary is a hard error."""
        with pytest.raises(CredentialError, match="not found"):
            get_credentials()

    @patch("gitcatalog.credentials.subprocess.run")
    @patch("gitcatalog.credentials.shutil.which", return_value="/usr/bin/git")
    def test_helper_nonzero_exit(self, mock_which, mock_run):
        """Test a failing helper is a hard error."""
        mock_run.return_value = completed(returncode=128, stderr="fatal: could not read Username")

        with pytest.raises(CredentialError, match="could not read Username"):
            get_credentials()

    @patch("gitcatalog.credentials.subprocess.run")
    @patch("gitcatalog.credentials.shutil.which", return_value="/usr/bin/git")
    def test_helper_missing_password(self, mock_which, mock_run):
        """Test output without a password is rejected."""
        mock_run.return_value = completed("username=alice\n")

        with pytest.raises(CredentialError):
            get_credentials()

    @patch("gitcatalog.credentials.subprocess.run")
    @patch("gitcatalog.credentials.shutil.which", return_value="/usr/bin/git")
    def test_helper_timeout(self, mock_which, mock_run):
        """Test a hanging helper is reported as a credential error."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=60)

        with pytest.raises(CredentialError):
            get_credentials()

    @patch("gitcatalog.credentials.subprocess.run")
    def test_env_token(self, mock_run, monkeypatch):
        """Test an environment token bypasses the helper."""
        monkeypatch.setenv(TOKEN_ENV, "env-token")
        monkeypatch.setenv(USERNAME_ENV, "bot")

        assert get_credentials() == Credentials("bot", "env-token")
        mock_run.assert_not_called()

    def test_repr_masks_token(self):
        """Test the token never appears in repr."""
        assert "secret" not in repr(Credentials("alice", "secret"))

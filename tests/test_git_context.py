"""Tests for repository context detection."""

import subprocess

import pytest

from response_boxes import git_context
from response_boxes.git_context import get_branch, get_repository, normalize_remote


class TestNormalizeRemote:
    """Tests for remote URL normalization."""

    @pytest.mark.parametrize(
        "remote,expected",
        [
            ("git@github.com:acme/app.git", "github.com/acme/app"),
            ("https://github.com/acme/app.git", "github.com/acme/app"),
            ("https://github.com/acme/app", "github.com/acme/app"),
            ("ssh://git@github.com/acme/app.git", "github.com/acme/app"),
            ("https://token@github.com/acme/app.git", "github.com/acme/app"),
            ("  http://gitlab.local/team/repo\n", "gitlab.local/team/repo"),
            ("", ""),
        ],
    )
    def test_normalize(self, remote, expected):
        assert normalize_remote(remote) == expected

    def test_ssh_and_https_match(self):
        assert normalize_remote("git@github.com:acme/app.git") == normalize_remote(
            "https://github.com/acme/app"
        )


class TestGetRepository:
    """Tests for repository lookup."""

    def test_no_cwd(self):
        assert get_repository(None) == ""
        assert get_branch("") == ""

    def test_missing_directory(self, tmp_path):
        assert get_repository(tmp_path / "nope") == ""

    def test_uses_origin_remote(self, monkeypatch, tmp_path):
        calls = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return subprocess.CompletedProcess(
                args, 0, stdout="git@github.com:acme/app.git\n", stderr=""
            )

        monkeypatch.setattr(git_context.subprocess, "run", fake_run)

        assert get_repository(tmp_path) == "github.com/acme/app"
        assert calls == [["git", "remote", "get-url", "origin"]]

    def test_not_a_repository(self, monkeypatch, tmp_path):
        def fake_run(args, **kwargs):
            return subprocess.CompletedProcess(args, 128, stdout="", stderr="fatal")

        monkeypatch.setattr(git_context.subprocess, "run", fake_run)

        assert get_repository(tmp_path) == ""

    def test_git_unavailable(self, monkeypatch, tmp_path):
        def fake_run(args, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr(git_context.subprocess, "run", fake_run)

        assert get_repository(tmp_path) == ""
        assert get_branch(tmp_path) == ""

    def test_git_timeout(self, monkeypatch, tmp_path):
        def fake_run(args, **kwargs):
            raise subprocess.TimeoutExpired(args, 2)

        monkeypatch.setattr(git_context.subprocess, "run", fake_run)

        assert get_repository(tmp_path) == ""

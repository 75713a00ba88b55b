"""Unit tests for the git client."""

from __future__ import annotations

import dataclasses
import datetime as dt
import sys
import typing as typ

import pytest

from pipescan.providers import CloneError, GitError, GitExitError
from pipescan.providers.errors import GitNotFoundError
from pipescan.providers.gitops import (
    TOKEN_ENV_VAR,
    GitClient,
    LocalGitClient,
    SubprocessGitCommand,
)
from tests.helpers.fakes import COMMIT_SHA

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path


@dataclasses.dataclass(slots=True)
class _Call:
    args: list[str]
    cwd: str
    env: dict[str, str] | None


class _ScriptedGitCommand:
    """GitCommand that records invocations and replays canned output."""

    def __init__(
        self,
        outputs: dict[str, str] | None = None,
        *,
        fail_on: str | None = None,
        stderr: str = "fatal: error",
    ) -> None:
        self.outputs = outputs or {}
        self.fail_on = fail_on
        self.stderr = stderr
        self.calls: list[_Call] = []

    def run(
        self,
        args: cabc.Sequence[str],
        cwd: str | Path,
        *,
        env: cabc.Mapping[str, str] | None = None,
    ) -> str:
        self.calls.append(_Call(list(args), str(cwd), dict(env) if env else None))
        if self.fail_on is not None and args[0] == self.fail_on:
            raise GitExitError(" ".join(["git", *args]), 128, self.stderr)
        return self.outputs.get(args[0], "")


class TestClone:
    """Tests for GitClient.clone."""

    @pytest.mark.asyncio
    async def test_runs_sparse_shallow_fetch(self, tmp_path: Path) -> None:
        """Clone initializes, configures sparse checkout and fetches one commit."""
        command = _ScriptedGitCommand()
        url = "https://github.com/acme/widgets"

        await GitClient(command).clone(tmp_path, url, "tok", "main")

        verbs = [call.args[:2] for call in command.calls]
        assert verbs == [
            ["init", "--quiet"],
            ["remote", "add"],
            ["config", "credential.helper"],
            ["config", "submodule.recurse"],
            ["config", "core.sparseCheckout"],
            ["sparse-checkout", "set"],
            ["fetch", "--quiet"],
            ["checkout", "--quiet"],
        ]
        fetch = command.calls[6].args
        assert fetch[-2:] == ["origin", "main"]
        assert "--depth" in fetch
        assert "--filter=blob:none" in fetch
        assert command.calls[5].args[2:] == ["--no-cone", "**/*.yml", "**/*.yaml"]
        assert {call.cwd for call in command.calls} == {str(tmp_path)}

    @pytest.mark.asyncio
    async def test_token_only_in_environment(self, tmp_path: Path) -> None:
        """The token is passed through the environment, never in argv."""
        command = _ScriptedGitCommand()

        await GitClient(command).clone(
            tmp_path, "https://github.com/acme/widgets", "s3cret", "main"
        )

        assert all(call.env == {TOKEN_ENV_VAR: "s3cret"} for call in command.calls)
        assert not any("s3cret" in arg for call in command.calls for arg in call.args)

    @pytest.mark.asyncio
    async def test_no_token_means_no_environment(self, tmp_path: Path) -> None:
        """Anonymous clones pass no extra environment."""
        command = _ScriptedGitCommand()

        await GitClient(command).clone(tmp_path, "https://x.test/a/b", "", "HEAD")

        assert all(call.env is None for call in command.calls)

    @pytest.mark.asyncio
    async def test_failure_redacts_token(self, tmp_path: Path) -> None:
        """A failing step raises CloneError with the token masked."""
        command = _ScriptedGitCommand(
            fail_on="fetch", stderr="auth failed for s3cret@github.com"
        )

        with pytest.raises(CloneError) as excinfo:
            await GitClient(command).clone(
                tmp_path, "https://github.com/acme/widgets", "s3cret", "main"
            )

        message = str(excinfo.value)
        assert "s3cret" not in message
        assert "REDACTED" in message
        assert message.startswith("failed to clone https://github.com/acme/widgets")
        assert excinfo.value.__cause__ is None
        assert command.calls[-1].args[0] == "fetch", "Expected clone to stop."


class TestCommitMetadata:
    """Reading commit details."""

    @pytest.mark.asyncio
    async def test_commit_sha(self, tmp_path: Path) -> None:
        """The SHA is read from git log without its newline."""
        command = _ScriptedGitCommand({"log": f"{COMMIT_SHA}\n"})

        sha = await GitClient(command).commit_sha(tmp_path)

        assert sha == COMMIT_SHA
        assert command.calls[0].args == ["log", "-1", "--format=%H"]

    @pytest.mark.asyncio
    async def test_last_commit_date(self, tmp_path: Path) -> None:
        """The committer timestamp is read as UTC."""
        command = _ScriptedGitCommand({"log": "1714564800\n"})
        client = GitClient(command)

        date = await client.last_commit_date(tmp_path)

        assert date == dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.UTC)
        assert command.calls[0].args == ["log", "-1", "--format=%ct"]

    @pytest.mark.asyncio
    async def test_bad_timestamp_raises(self, tmp_path: Path) -> None:
        """Unparseable dates surface as git errors."""
        client = GitClient(_ScriptedGitCommand({"log": "yesterday\n"}))

        with pytest.raises(GitError, match="unexpected output"):
            await client.last_commit_date(tmp_path)

    @pytest.mark.asyncio
    async def test_remote_origin_url_is_stripped(self, tmp_path: Path) -> None:
        """Trailing newlines are removed."""
        client = GitClient(
            _ScriptedGitCommand({"config": "git@github.com:acme/widgets.git\n"})
        )

        assert (
            await client.remote_origin_url(tmp_path)
            == "git@github.com:acme/widgets.git"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("output", "expected"),
        [
            ("ref: refs/heads/trunk\tHEAD\n0123abcd\tHEAD\n", "trunk"),
            ("0123abcd\tHEAD\n", "HEAD"),
            ("", "HEAD"),
        ],
    )
    async def test_head_branch_name(
        self, tmp_path: Path, output: str, expected: str
    ) -> None:
        """The symbolic HEAD of the remote names the default branch."""
        command = _ScriptedGitCommand({"ls-remote": output})

        branch = await GitClient(command).head_branch_name(tmp_path, "tok")

        assert branch == expected
        assert command.calls[0].env == {TOKEN_ENV_VAR: "tok"}


class TestLocalGitClient:
    """The degrading client used for local checkouts."""

    @pytest.mark.asyncio
    async def test_falls_back_outside_a_repository(self, tmp_path: Path) -> None:
        """Every metadata read has a neutral fallback."""
        client = LocalGitClient(_ScriptedGitCommand(fail_on="log"))
        failing_all = LocalGitClient(_ScriptedGitCommand(fail_on="config"))
        no_branch = LocalGitClient(_ScriptedGitCommand(fail_on="branch"))

        assert await client.commit_sha(tmp_path) == ""
        assert (await client.last_commit_date(tmp_path)).tzinfo is dt.UTC
        assert await failing_all.remote_origin_url(tmp_path) == str(tmp_path)
        assert await no_branch.head_branch_name(tmp_path) == "HEAD"

    @pytest.mark.asyncio
    async def test_current_branch_is_used(self, tmp_path: Path) -> None:
        """The checked-out branch is reported; detached HEAD gives HEAD."""
        on_branch = LocalGitClient(_ScriptedGitCommand({"branch": "feature\n"}))
        detached = LocalGitClient(_ScriptedGitCommand({"branch": "\n"}))

        assert await on_branch.head_branch_name(tmp_path) == "feature"
        assert await detached.head_branch_name(tmp_path) == "HEAD"

    @pytest.mark.asyncio
    async def test_clone_is_a_no_op(self, tmp_path: Path) -> None:
        """Local checkouts are never fetched."""
        command = _ScriptedGitCommand()

        await LocalGitClient(command).clone(tmp_path, "https://x.test/a", "t", "main")

        assert command.calls == []


class TestSubprocessGitCommand:
    """The real subprocess runner."""

    def test_missing_git_binary(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A missing executable raises GitNotFoundError."""
        monkeypatch.setattr("pipescan.providers.gitops.shutil.which", lambda _: None)

        with pytest.raises(GitNotFoundError, match="git binary not found"):
            SubprocessGitCommand().run(["status"], tmp_path)

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_undecodable_output_is_replaced(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Non-UTF-8 bytes from git become replacement characters."""
        git = tmp_path / "git"
        git.write_bytes(b"#!/bin/sh\nprintf 'refs/heads/caf\\351\\n'\n")
        git.chmod(0o755)
        monkeypatch.setattr(
            "pipescan.providers.gitops.shutil.which", lambda _: str(git)
        )

        output = SubprocessGitCommand().run(["symbolic-ref", "HEAD"], tmp_path)

        assert output == "refs/heads/caf\ufffd\n"

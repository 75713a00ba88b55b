"""Thin ``git`` client used to fetch and describe checkouts.

Commands run synchronously through a :class:`GitCommand` runner; the async
client methods hand them to a worker thread so the event loop stays free.
Clones are shallow, blob-filtered and sparse: only YAML files are checked
out.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import os
import shlex
import shutil
import subprocess
import typing as typ

from pipescan.logging import get_logger, log_debug

from .errors import (
    CloneError,
    GitCommandError,
    GitError,
    GitExitError,
    GitNotFoundError,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

logger = get_logger(__name__)

TOKEN_ENV_VAR = "PIPESCAN_GIT_ASKPASS_TOKEN"
CREDENTIAL_HELPER = (
    '!f() { test "$1" = get && echo "username=x-access-token" '
    f'&& echo "password=${TOKEN_ENV_VAR}"; }}; f'
)
SPARSE_PATTERNS = ("**/*.yml", "**/*.yaml")
DEFAULT_TIMEOUT_S = 300.0


class GitCommand(typ.Protocol):
    """Runs one ``git`` invocation and returns its stdout."""

    def run(
        self,
        args: cabc.Sequence[str],
        cwd: str | Path,
        *,
        env: cabc.Mapping[str, str] | None = None,
    ) -> str:
        """Run ``git <args>`` in ``cwd``.

        Raises
        ------
        GitError
            If ``git`` is missing, cannot start, or exits non-zero.

        """
        ...


class GitOperations(typ.Protocol):
    """Git operations the analyzer needs for one checkout."""

    async def clone(
        self, path: str | Path, url: str, token: str, ref: str
    ) -> None: ...

    async def commit_sha(self, path: str | Path) -> str: ...

    async def last_commit_date(self, path: str | Path) -> dt.datetime: ...

    async def remote_origin_url(self, path: str | Path) -> str: ...

    async def head_branch_name(self, path: str | Path, token: str = "") -> str: ...


@dataclasses.dataclass(frozen=True, slots=True)
class SubprocessGitCommand:
    """:class:`GitCommand` backed by :func:`subprocess.run`."""

    timeout_s: float = DEFAULT_TIMEOUT_S

    def run(
        self,
        args: cabc.Sequence[str],
        cwd: str | Path,
        *,
        env: cabc.Mapping[str, str] | None = None,
    ) -> str:
        """Run ``git <args>`` in ``cwd`` and return stdout."""
        command = shlex.join(["git", *args])
        git_executable = shutil.which("git")
        if git_executable is None:
            raise GitNotFoundError(command)

        merged_env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", **(env or {})}
        try:
            result = subprocess.run(  # noqa: S603  # argv built from fixed git verbs
                [git_executable, *args],
                cwd=str(cwd),
                env=merged_env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise GitCommandError(command, exc) from exc
        if result.returncode != 0:
            stderr = result.stderr.strip() or f"exit status {result.returncode}"
            raise GitExitError(command, result.returncode, stderr)
        return result.stdout


class GitClient:
    """Clone repositories and read commit metadata.

    Examples
    --------
    >>> client = GitClient()
    >>> url = "https://github.com/acme/widgets"
    >>> await client.clone("/tmp/pipescan-x", url, "t", "HEAD")  # doctest: +SKIP
    >>> await client.commit_sha("/tmp/pipescan-x")  # doctest: +SKIP

    """

    def __init__(self, command: GitCommand | None = None) -> None:
        """Use ``command`` to run git, or a subprocess runner by default."""
        self._command = command or SubprocessGitCommand()

    @property
    def command(self) -> GitCommand:
        """Return the runner used for git invocations."""
        return self._command

    async def _run(
        self,
        args: cabc.Sequence[str],
        cwd: str | Path,
        *,
        env: cabc.Mapping[str, str] | None = None,
    ) -> str:
        return await asyncio.to_thread(self._command.run, args, cwd, env=env)

    def _clone_steps(self, url: str, ref: str) -> list[list[str]]:
        return [
            ["init", "--quiet"],
            ["remote", "add", "origin", url],
            ["config", "credential.helper", CREDENTIAL_HELPER],
            ["config", "submodule.recurse", "false"],
            ["config", "core.sparseCheckout", "true"],
            ["sparse-checkout", "set", "--no-cone", *SPARSE_PATTERNS],
            [
                "fetch",
                "--quiet",
                "--no-tags",
                "--depth",
                "1",
                "--filter=blob:none",
                "origin",
                ref,
            ],
            ["checkout", "--quiet", "-b", "target", "FETCH_HEAD"],
        ]

    async def clone(self, path: str | Path, url: str, token: str, ref: str) -> None:
        """Fetch ``ref`` of ``url`` into the existing empty directory ``path``.

        The token reaches git only through the environment of each command
        and is masked in any error raised.

        Raises
        ------
        CloneError
            If any git step fails.

        """
        env = {TOKEN_ENV_VAR: token} if token else None
        for step in self._clone_steps(url, ref):
            try:
                await self._run(step, path, env=env)
            except GitError as exc:
                raise CloneError.from_git_error(url, exc, token) from None

    async def commit_sha(self, path: str | Path) -> str:
        """Return the SHA of the checked-out commit."""
        return (await self._run(["log", "-1", "--format=%H"], path)).strip()

    async def last_commit_date(self, path: str | Path) -> dt.datetime:
        """Return the committer date of the checked-out commit in UTC.

        Raises
        ------
        GitError
            If git fails or prints something other than a Unix timestamp.

        """
        output = (await self._run(["log", "-1", "--format=%ct"], path)).strip()
        try:
            return dt.datetime.fromtimestamp(int(output), tz=dt.UTC)
        except ValueError as exc:
            command = "git log -1 --format=%ct"
            raise GitCommandError(command, f"unexpected output {output!r}") from exc

    async def remote_origin_url(self, path: str | Path) -> str:
        """Return the configured ``origin`` URL."""
        output = await self._run(["config", "--get", "remote.origin.url"], path)
        return output.strip()

    async def head_branch_name(self, path: str | Path, token: str = "") -> str:
        """Return the remote's default branch, or ``HEAD`` when unknown."""
        env = {TOKEN_ENV_VAR: token} if token else None
        output = await self._run(
            ["ls-remote", "--symref", "origin", "HEAD"], path, env=env
        )
        for line in output.splitlines():
            if line.startswith("ref:"):
                ref = line.split("\t", 1)[0]
                return ref.removeprefix("ref: ").removeprefix("refs/heads/")
        return "HEAD"

    async def current_branch(self, path: str | Path) -> str:
        """Return the checked-out branch name, or ``""`` when detached."""
        return (await self._run(["branch", "--show-current"], path)).strip()


class LocalGitClient:
    """Git client for an existing checkout that degrades instead of failing.

    Working trees without git metadata still scan: every git failure is
    logged at DEBUG and replaced with a neutral value.
    """

    def __init__(self, command: GitCommand | None = None) -> None:
        """Wrap a :class:`GitClient` built on ``command``."""
        self._git = GitClient(command)

    async def clone(self, path: str | Path, url: str, token: str, ref: str) -> None:
        """Do nothing; local checkouts are never cloned."""
        del path, url, token, ref
        log_debug(logger, "local git client does not clone repositories")

    async def commit_sha(self, path: str | Path) -> str:
        """Return the HEAD SHA, or ``""`` outside a repository."""
        try:
            return await self._git.commit_sha(path)
        except GitError as exc:
            log_debug(logger, "failed to get commit SHA for local repo: %s", exc)
            return ""

    async def last_commit_date(self, path: str | Path) -> dt.datetime:
        """Return the HEAD commit date, or now outside a repository."""
        try:
            return await self._git.last_commit_date(path)
        except GitError as exc:
            log_debug(logger, "failed to get last commit date for local repo: %s", exc)
            return dt.datetime.now(dt.UTC)

    async def remote_origin_url(self, path: str | Path) -> str:
        """Return the origin URL, or the checkout path when there is none."""
        try:
            return await self._git.remote_origin_url(path)
        except GitError as exc:
            log_debug(logger, "failed to get remote origin URL for local repo: %s", exc)
            return str(path)

    async def head_branch_name(self, path: str | Path, token: str = "") -> str:
        """Return the current branch, or ``HEAD`` when detached or unknown."""
        del token
        try:
            branch = await self._git.current_branch(path)
        except GitError as exc:
            log_debug(logger, "failed to get branch name for local repo: %s", exc)
            return "HEAD"
        return branch or "HEAD"

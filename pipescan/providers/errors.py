"""Source-control and git errors."""

from __future__ import annotations


class ScmApiError(RuntimeError):
    """Raised when a source-control API returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, provider: str, status_code: int) -> ScmApiError:
        """Return an error for non-2xx HTTP responses."""
        return cls(f"{provider} API HTTP {status_code}", status_code=status_code)

    @classmethod
    def transport_error(cls, provider: str, reason: object) -> ScmApiError:
        """Return an error for a request that never produced a response."""
        return cls(f"{provider} API request failed: {reason}")

    @classmethod
    def graphql_errors(cls, errors: object) -> ScmApiError:
        """Return an error for GraphQL ``errors`` payloads."""
        return cls(f"GitHub GraphQL errors: {errors}")

    @classmethod
    def org_not_found(cls, provider: str, org: str) -> ScmApiError:
        """Return an error for an organization or group that does not exist."""
        return cls(f"{provider} organization {org!r} does not exist", status_code=404)

    @classmethod
    def repo_not_found(cls, provider: str, identifier: str) -> ScmApiError:
        """Return an error for a repository that cannot be scanned."""
        return cls(f"{provider} repository {identifier!r} not found", status_code=404)


class ScmResponseShapeError(RuntimeError):
    """Raised when an API response is missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> ScmResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"Source-control response missing expected field: {field}")


class ScmConfigError(ValueError):
    """Raised when source-control configuration is invalid."""

    @classmethod
    def missing_token(cls, provider: str) -> ScmConfigError:
        """Return an error when no API token is configured."""
        return cls(
            f"A {provider} token is required; set --token or PIPESCAN_TOKEN "
            "(GH_TOKEN, GITHUB_TOKEN and GITLAB_TOKEN are also read)"
        )

    @classmethod
    def unsupported_provider(cls, provider: str) -> ScmConfigError:
        """Return an error for an unknown provider name."""
        return cls(f"Unsupported source-control provider: {provider!r}")

    @classmethod
    def invalid_repo(cls, text: str) -> ScmConfigError:
        """Return an error for a repository reference not in ``org/repo`` form."""
        return cls(f"Invalid repository {text!r}, expected <org>/<repo>")

    @classmethod
    def unsupported_operation(cls, provider: str, operation: str) -> ScmConfigError:
        """Return an error for an operation a provider cannot perform."""
        return cls(f"The {provider} provider does not support {operation}")

    @classmethod
    def missing_repo_path(cls) -> ScmConfigError:
        """Return an error when the local provider has no checkout path."""
        return cls("The local provider requires a repository path")


class ListingError(RuntimeError):
    """Raised when an organization's repositories cannot be listed."""

    def __init__(self, org: str, reason: object) -> None:
        """Initialise with the organization and the underlying failure."""
        self.org = org
        super().__init__(f"Failed to list repositories of {org}: {reason}")


class GitError(RuntimeError):
    """Base class for failures of a ``git`` invocation."""

    def __init__(self, message: str, *, command: str) -> None:
        """Initialise with a message and the command line that failed."""
        self.command = command
        super().__init__(message)

    def redacted(self, secret: str) -> GitError:
        """Return a copy of this error with ``secret`` masked everywhere."""
        if not secret or secret not in str(self):
            return self
        mask = "REDACTED"
        return GitError(
            str(self).replace(secret, mask), command=self.command.replace(secret, mask)
        )


class GitCommandError(GitError):
    """Raised when ``git`` could not be run at all."""

    def __init__(self, command: str, reason: object) -> None:
        """Initialise with the command line and the OS-level failure."""
        super().__init__(
            f"error running command `{command}`: {reason}", command=command
        )


class GitExitError(GitError):
    """Raised when ``git`` exits with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        """Initialise with the command line, exit status and stderr text."""
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"command `{command}` failed with exit code {exit_code}: {stderr}",
            command=command,
        )


class GitNotFoundError(GitError):
    """Raised when no ``git`` executable is on ``PATH``."""

    def __init__(self, command: str) -> None:
        """Initialise with the command line that could not start."""
        super().__init__(
            f"git binary not found for command `{command}`; "
            "ensure Git is installed and on PATH",
            command=command,
        )


class CloneError(GitError):
    """Raised when a repository cannot be cloned."""

    @classmethod
    def from_git_error(cls, url: str, exc: GitError, token: str) -> CloneError:
        """Wrap ``exc`` with the token masked out of every message."""
        masked = exc.redacted(token)
        return cls(f"failed to clone {url}: {masked}", command=masked.command)

"""Application-specific exceptions for lazyactions.

This module provides a hierarchy of exceptions that enable more precise
error handling throughout the application. Startup errors end the program
before the display opens; fetch errors raised later become UI state.

Exception Hierarchy:
    LazyActionsError (base)
    ├── FetchError
    │   ├── ToolNotFoundError            (also a StartupError)
    │   ├── NotAuthenticatedError        (also a StartupError)
    │   ├── CommandFailedError
    │   ├── MalformedOutputError
    │   └── FetchCancelledError
    ├── StartupError
    │   └── RepositoryNotFoundError
    └── ConfigurationError
"""


class LazyActionsError(Exception):
    """Base exception for all lazyactions errors.

    All application-specific exceptions inherit from this class,
    allowing callers to catch all lazyactions errors with a single handler.
    """


class StartupError(LazyActionsError):
    """Base exception for conditions that prevent the monitor from starting."""


class FetchError(LazyActionsError):
    """Base exception for failures of a single external data fetch.

    Attributes:
        command: The command line that was executed.
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        command: str,
        message: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.command = command
        self.cause = cause
        self.message = message or f"`{command}` failed"
        if cause:
            self.message = f"{self.message}: {cause}"
        super().__init__(self.message)


class ToolNotFoundError(FetchError, StartupError):
    """Raised when the external executable is not installed or not on PATH."""

    def __init__(self, command: str, message: str | None = None) -> None:
        executable = command.split(" ", 1)[0]
        super().__init__(
            command,
            message or f"`{executable}` was not found; install it and make sure it is on PATH",
        )


class NotAuthenticatedError(FetchError, StartupError):
    """Raised when the GitHub CLI reports that no user is logged in."""

    def __init__(self, command: str, message: str | None = None) -> None:
        super().__init__(
            command,
            message or "GitHub CLI is not authenticated; run `gh auth login` first",
        )


class CommandFailedError(FetchError):
    """Raised when an external command exits with a non-zero status.

    Attributes:
        returncode: The exit status, or None when the command timed out.
        stderr: Captured diagnostic output.
    """

    def __init__(
        self,
        command: str,
        returncode: int | None,
        stderr: str = "",
        message: str | None = None,
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr.strip()
        if message is None:
            detail = self.stderr.splitlines()[-1] if self.stderr else "no diagnostic output"
            message = f"`{command}` exited with status {returncode}: {detail}"
        super().__init__(command, message)


class MalformedOutputError(FetchError):
    """Raised when command output cannot be parsed into the expected shape."""

    def __init__(
        self,
        command: str,
        message: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(command, message or f"Unexpected output from `{command}`", cause)


class FetchCancelledError(FetchError):
    """Raised when a fetch was aborted through its cancellation handle."""

    def __init__(self, command: str) -> None:
        super().__init__(command, f"`{command}` was cancelled")


class RepositoryNotFoundError(StartupError):
    """Raised when the working directory is not inside a GitHub repository.

    Attributes:
        path: The directory that was inspected.
        message: Human-readable error description.
    """

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        self.message = message or f"{path} is not inside a GitHub repository"
        super().__init__(self.message)


class ConfigurationError(LazyActionsError):
    """Raised when there is a configuration error.

    Attributes:
        parameter: The configuration parameter that is invalid.
        message: Human-readable error description.
    """

    def __init__(self, parameter: str, message: str | None = None) -> None:
        self.parameter = parameter
        self.message = message or f"Invalid configuration for '{parameter}'"
        super().__init__(self.message)

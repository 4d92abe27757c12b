"""Git command execution and repository metadata access."""

from .gateway import GitGateway
from .runner import (
    FakeGitRunner,
    GitExecutionResult,
    GitNotFoundError,
    GitRunner,
    GitRunnerError,
    GitTimeoutError,
)

__all__ = [
    "FakeGitRunner",
    "GitExecutionResult",
    "GitGateway",
    "GitNotFoundError",
    "GitRunner",
    "GitRunnerError",
    "GitTimeoutError",
]

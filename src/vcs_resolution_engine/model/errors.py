from __future__ import annotations

from collections.abc import Mapping
from typing import Sequence


class ResolutionError(Exception):
    """
    Base error type for resolution failures.

    Every error may name the dependency it concerns (``app_name``) and carry the
    lower-level exceptions that caused it (``causes``).
    """

    def __init__(
        self,
        message: str,
        *,
        app_name: str | None = None,
        causes: Sequence[BaseException] = (),
    ):
        super().__init__(message)
        self.app_name = app_name
        self.causes = tuple(causes)


class InvalidDescriptor(ResolutionError, ValueError):
    """
    Raised when a dependency declaration carries a malformed URL or selector.

    Fatal for that one dependency only.
    """


class ResolutionFailure(ResolutionError):
    """
    Raised when a reference cannot be turned into a concrete commit (remote
    unreachable, unknown tag or branch, transport command failed).
    """


class MaterializationError(ResolutionError):
    """
    Raised when an application package cannot be written to disk.
    """


class ProgrammingInvariantViolation(ResolutionError):
    """
    Raised when an internal contract is broken, e.g. the lock encoder receiving a
    reference without a kind. Never retried.
    """


class LockFileError(ResolutionError):
    """
    Raised when a lock file cannot be read or does not have the expected shape.
    """


class ResolutionRunError(ResolutionError):
    """
    Raised at the end of a run when one or more dependencies failed.

    ``failures`` maps every failed dependency name to its error; no lock file is
    written for such a run.
    """

    def __init__(self, failures: Mapping[str, ResolutionError]):
        names = ", ".join(sorted(failures))
        super().__init__(
            f"{len(failures)} dependencies failed to resolve: {names}",
            causes=tuple(failures[n] for n in sorted(failures)),
        )
        self.failures = dict(failures)

"""pvcs error types."""


class PvcsError(Exception):
    """Base class for every error raised by pvcs."""


class NotFound(PvcsError, LookupError):
    """An object, tree, commit, branch or repository does not exist."""


class AlreadyExists(PvcsError):
    """A branch or repository with that name is already present."""


class InvalidName(PvcsError, ValueError):
    """A branch name is empty or contains whitespace or a path separator."""


class InvalidState(PvcsError):
    """The repository is in a state that forbids the operation.

    Deleting the current branch, a HEAD that cannot be resolved, or an
    unborn branch used where a tip commit is required.
    """


class ValidationError(PvcsError, ValueError):
    """A tree entry or commit field is malformed.

    Attributes:
        field: Name of the offending field.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class ConflictError(PvcsError):
    """Raised when a ref compare-and-swap loses a race.

    Another writer moved the branch tip between when it was read and
    when the update was attempted. The caller should retry against the
    fresh tip or report the conflict.

    Attributes:
        branch: The contended branch.
        expected: The tip the caller expected.
        actual: The tip found in storage.
    """

    def __init__(
        self, branch: str, expected: str | None, actual: str | None
    ) -> None:
        self.branch = branch
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Branch '{branch}' moved from {expected or '(unborn)'} "
            f"to {actual or '(unborn)'}. Retry against the new tip."
        )


class StorageError(PvcsError):
    """Underlying I/O failed. The original ``OSError`` is ``__cause__``."""

"""Content rule violations raised by the CMS service modules."""


class ContentError(Exception):
    """A write that breaks a content rule."""

    status_code = 400


class ContentNotFound(ContentError):
    status_code = 404


class VersionConflict(ContentError):
    """The stored version advanced since the client last read it."""

    status_code = 409

    def __init__(self, expected: int, current: int):
        super().__init__(
            f"Content has been modified by another user "
            f"(expected version {expected}, current version {current}). Reload and try again."
        )
        self.expected = expected
        self.current = current

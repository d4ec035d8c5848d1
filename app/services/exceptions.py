"""Error taxonomy for the package merge engine."""


class ScormMergeError(Exception):
    """Base class for merge engine failures."""


class ParseError(ScormMergeError):
    """Raised when an uploaded archive has no readable manifest.

    The upload layer records the message on the package instead of failing
    the whole batch.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid SCORM package: {reason}")


class MergeError(ScormMergeError):
    """Raised when a package archive cannot be read during a merge."""


class DescriptionGenerationError(ScormMergeError):
    """Raised by a description backend. Callers always fall back."""

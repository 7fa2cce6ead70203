class ChainKeeperError(Exception):
    """Base class for recoverable automation failures."""


class ElementNotFound(ChainKeeperError):
    """A composer, send control or toolbar anchor could not be located."""

    def __init__(self, what, message=None):
        self.what = what
        super().__init__(message or f"{what} not found")


class ServiceError(ChainKeeperError):
    """The scoring service failed or answered ok: false."""


class DetectionTimeout(ChainKeeperError):
    """Completion polling ran out of checks."""


class ConcurrentReplayRejected(ChainKeeperError):
    def __init__(self, message="A chain replay is already running"):
        super().__init__(message)


class LibraryError(ChainKeeperError):
    """Bad import file or unknown template id."""

# rivalwatch/errors.py

"""Exception types raised across the monitoring pipeline."""


class RivalwatchError(Exception):
    """Base class for rivalwatch errors."""


class FetchError(RivalwatchError):
    """A page could not be fetched (transport failure or non-2xx status)."""

    def __init__(self, url: str, status_code: int | None = None,
                 reason: str = "") -> None:
        self.url = url
        self.status_code = status_code
        self.reason = reason
        if status_code is not None:
            message = f"Failed to fetch {url}: HTTP {status_code}"
        else:
            message = f"Failed to fetch {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class MenuParseError(RivalwatchError):
    """The menu markup did not match any known structure."""


class EnrichmentError(RivalwatchError):
    """The classification service failed or answered malformed data."""


class InvalidCheckRequest(RivalwatchError):
    """A check was requested without the fields it needs."""

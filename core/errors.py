# core/errors.py
"""Failure taxonomy for the scrape-parse-cache pipeline.

TransportFailure, DecodeFailure and StorageFailure are recovered where they
happen (a target, an item or a single write contributes nothing). Anything
else that escapes a refresh is an unhandled failure and ends it in the
FAILED state.
"""


class VoucherError(Exception):
    """Base class for voucher radar errors."""


class TransportFailure(VoucherError):
    """Non-2xx response or network error while fetching through the relay."""

    def __init__(self, url: str, status: int | None = None, reason: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        if status is not None:
            msg = f"HTTP {status} fetching {url}"
        else:
            msg = f"Network error fetching {url}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class DecodeFailure(VoucherError):
    """Malformed HTML or JSON."""


class StorageFailure(VoucherError):
    """A value could not be written durably."""


class RefreshInProgress(VoucherError):
    """A refresh was requested while another one is still running."""

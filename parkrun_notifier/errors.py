"""
Exception taxonomy for the scrape-and-notify pipeline.
"""

from __future__ import annotations


class NotifierError(Exception):
    """Base exception for notifier failures."""


class TransientFetchError(NotifierError):
    """Raised when a results page cannot be fetched (network or HTTP failure)."""


class MalformedPageError(NotifierError):
    """Raised when a results page lacks the structural elements the parser expects."""


class StoreUnavailableError(NotifierError):
    """Raised when the cursor or subscription store cannot be reached."""


class DispatchError(NotifierError):
    """Raised when the email gateway rejects or fails a send."""

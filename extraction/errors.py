from __future__ import annotations


class ExtractionError(Exception):
    """Text could not be extracted; the message carries the full detail."""

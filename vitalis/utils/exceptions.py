"""Exceptions raised by the report analysis services."""


class AIServiceError(Exception):
    """The AI analysis service could not produce a usable response."""


class DocumentTextError(Exception):
    """No text could be read from an uploaded document."""

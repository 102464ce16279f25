"""
Error taxonomy for the query pipeline.

Only collaborator failures are exceptions.  "No results" is a normal
terminal state of the orchestrator, and malformed stored documents are
tolerated by the normalizer, so neither has an exception class here.
"""

from __future__ import annotations


class DigitaliusError(Exception):
    """Base class for every error raised by the pipeline."""


class QueryValidationError(DigitaliusError):
    """The query is empty or longer than the allowed maximum."""


class ClassificationUnavailable(DigitaliusError):
    """The intent classifier could not produce an Intent."""


class StoreUnavailable(DigitaliusError):
    """MongoDB could not be reached or a read failed."""


class UpstreamServiceError(DigitaliusError):
    """An external call (synthesis, or the whole request) failed or timed out."""

"""
Error taxonomy for pipeline runs.

Run-fatal errors abort the run and mark it failed. Everything else is caught
at the unit boundary (one query, one batch, one candidate, one signal) and
recorded in the run's error list while the run carries on.
"""


class LeadDripError(Exception):
    """Base class for every error the pipeline raises on purpose."""
    fatal = False


# ── Run-fatal ────────────────────────────────────────────────────────────────

class InvalidConfiguration(LeadDripError):
    """User config or service wiring cannot support a run."""
    fatal = True


class ProviderUnavailable(LeadDripError):
    """A required provider is not configured at all."""
    fatal = True


class StorageFailure(LeadDripError):
    """The lead store could not be read or written."""
    fatal = True


# ── Per-unit ─────────────────────────────────────────────────────────────────

class SearchFailure(LeadDripError):
    pass


class ExtractionFailure(LeadDripError):
    pass


class EvidenceFetchFailure(LeadDripError):
    pass


class SignalEvaluationFailure(LeadDripError):
    pass


# ── Provider plumbing ────────────────────────────────────────────────────────

class ProviderRequestError(LeadDripError):
    """
    A call to an external provider failed.

    `transient` marks failures worth retrying (timeouts, 5xx, 429).
    """

    def __init__(self, message, provider='', status_code=None, transient=False):
        self.provider = provider
        self.status_code = status_code
        self.transient = transient
        super().__init__(message)


class StructuredOutputError(LeadDripError):
    """Generated text never validated against the requested schema."""

    def __init__(self, message, attempts=0):
        self.attempts = attempts
        super().__init__(message)


class InvalidRunTransition(LeadDripError):
    pass

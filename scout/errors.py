"""
Error taxonomy.

Per-task upstream failures are recorded on the task and never escape a run;
configuration and store failures abort the operation in progress.
"""


class ScoutError(Exception):
    """Base class for all application errors."""

    code = "error"


class ConfigurationError(ScoutError):
    """A required setting is missing. Raised before any work starts."""

    code = "configuration"


class AuthorizationError(ScoutError):
    """Bad or missing credential on a privileged operation."""

    code = "unauthorized"


class UpstreamError(ScoutError):
    """Trend probe, classifier or feed call failed."""

    code = "upstream"


class ProbeTimeout(UpstreamError):
    code = "timeout"


class RateLimited(UpstreamError):
    code = "rate_limited"


class BudgetExhausted(ScoutError):
    """Cost budget cannot cover another task. A stop condition, not a failure."""

    code = "budget_exhausted"


class StoreError(ScoutError):
    """Persistence failure; state past this point is not guaranteed."""

    code = "store"


class NotFoundError(ScoutError):
    code = "not_found"


class InvalidTransition(ScoutError):
    """Requested status change is not allowed from the current state."""

    code = "invalid_transition"

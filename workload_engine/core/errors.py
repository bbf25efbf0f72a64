# workload_engine/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class WorkloadError(Exception):
    """Base class for all workload engine errors."""
    code = "WORKLOAD_ERROR"

    def __init__(self, message: str, *, code: str = None):
        super().__init__(message)
        if code:
            self.code = code


# -----------------------------
# Configuration Errors
# -----------------------------

class ConfigurationError(WorkloadError):
    """Bad input caught before any container exists. Never retried."""
    code = "CONFIGURATION_ERROR"


# -----------------------------
# Engine Errors
# -----------------------------

class EngineUnavailable(WorkloadError):
    """Container engine unreachable. Callers may retry with backoff."""
    code = "ENGINE_UNAVAILABLE"


class EngineOperationError(WorkloadError):
    """Engine answered but refused the operation."""
    code = "ENGINE_ERROR"


class ResourceNotFound(WorkloadError):
    """Container or network absent on the engine."""
    code = "NOT_FOUND"


class ResourceExhausted(WorkloadError):
    """Port range exhausted or allocation collided. Retryable."""
    code = "RESOURCE_EXHAUSTED"


class PartialFailure(WorkloadError):
    """A step failed but the workflow can still proceed (logged only)."""
    code = "PARTIAL_FAILURE"

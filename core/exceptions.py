"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Error types raised across the fraud engine.

Two properties decide what happens to an error:
- classification: whether the next scheduled run can succeed
  without an operator (TRANSIENT / RECOVERABLE) or not
- severity: CRITICAL and NON_RECOVERABLE together mark a
  fatal error that must abort the running job

Per-record failures (one bad document, one rejected action)
are recoverable and get collected into job summaries.

============================================================
EXCEPTION HIERARCHY
============================================================
FraudEngineError (base)
├── ConfigurationError
│   ├── MissingConfigError
│   └── InvalidConfigError
├── DataSourceError
│   └── DataSourceUnavailableError   (fatal, propagates out of jobs)
├── PersistenceError
├── AuthorizationError
│   ├── UnauthenticatedError
│   └── PermissionDeniedError
├── RemediationError
├── AlertDeliveryError
└── SchedulingError
    ├── JobLockedError
    └── JobNotFoundError

============================================================
"""

from enum import Enum
from typing import Any, Dict, Optional


class Severity(Enum):
    """How loudly an error is reported."""
    
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorClassification(Enum):
    """Whether a later run can succeed without intervention."""
    
    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    NON_RECOVERABLE = "non_recoverable"


def _context_with(kwargs: Dict[str, Any], **fields: Any) -> Dict[str, Any]:
    """Pop `context` from kwargs and add the non-empty detail fields."""
    context = dict(kwargs.pop("context", None) or {})
    context.update({k: v for k, v in fields.items() if v is not None and v != ""})
    return context


# ============================================================
# BASE EXCEPTION
# ============================================================

class FraudEngineError(Exception):
    """
    Root of the engine's error tree.
    
    Subclasses set default_severity / default_classification and
    put their identifying fields (job name, table, target id) into
    `context` so log lines and alerts can show them.
    """
    
    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE
    
    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity or self.default_severity
        self.classification = classification or self.default_classification
        self.context = dict(context or {})
        self.cause = cause
        if cause is not None:
            self.context.setdefault("cause_type", type(cause).__name__)
            self.context.setdefault("cause_message", str(cause))
    
    @property
    def is_recoverable(self) -> bool:
        return self.classification != ErrorClassification.NON_RECOVERABLE
    
    @property
    def is_fatal(self) -> bool:
        """Fatal errors must propagate out of the running job."""
        return (
            self.severity == Severity.CRITICAL
            and self.classification == ErrorClassification.NON_RECOVERABLE
        )
    
    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
        }
        data.update(self.context)
        return data


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(FraudEngineError):
    """Engine configuration cannot be used as given."""
    
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE
    
    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = _context_with(
            kwargs,
            config_key=config_key,
            actual_value=None if actual_value is None else str(actual_value)[:100],
        )
        super().__init__(message, context=context, **kwargs)


class MissingConfigError(ConfigurationError):
    
    def __init__(self, key: str, source: str = "config"):
        super().__init__(
            f"Missing required configuration: {key}",
            config_key=key,
            context={"source": source},
        )


class InvalidConfigError(ConfigurationError):
    
    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )


# ============================================================
# DATA SOURCE ERRORS
# ============================================================

class DataSourceError(FraudEngineError):
    """Upstream read failed for a single query."""
    
    default_classification = ErrorClassification.TRANSIENT
    
    def __init__(
        self,
        message: str,
        domain: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        context = _context_with(kwargs, domain=domain, operation=operation)
        super().__init__(message, context=context, **kwargs)


class DataSourceUnavailableError(DataSourceError):
    """
    The upstream datastore is entirely unreachable.
    
    Never caught by collectors or detectors: it propagates out of
    the job so the scheduler can observe and alert on it.
    """
    
    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE


# ============================================================
# PERSISTENCE ERRORS
# ============================================================

class PersistenceError(FraudEngineError):
    """Write to an engine-owned table failed."""
    
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT
    
    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs,
    ):
        context = _context_with(kwargs, operation=operation, table=table)
        super().__init__(message, context=context, **kwargs)


# ============================================================
# AUTHORIZATION ERRORS
# ============================================================

class AuthorizationError(FraudEngineError):
    """Base class for caller identity failures."""
    
    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.NON_RECOVERABLE
    
    code: str = "permission-denied"
    
    def __init__(
        self,
        message: str,
        caller_id: Optional[str] = None,
        capability: Optional[str] = None,
        **kwargs,
    ):
        context = _context_with(kwargs, caller_id=caller_id, capability=capability)
        super().__init__(message, context=context, **kwargs)


class UnauthenticatedError(AuthorizationError):
    """No verified caller identity was supplied."""
    
    code = "unauthenticated"


class PermissionDeniedError(AuthorizationError):
    """Caller is authenticated but lacks the required role."""
    
    code = "permission-denied"


# ============================================================
# PIPELINE ERRORS
# ============================================================

class RemediationError(FraudEngineError):
    """An auto action could not be applied."""
    
    default_severity = Severity.HIGH
    
    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        target_id: Optional[str] = None,
        **kwargs,
    ):
        context = _context_with(kwargs, action=action, target_id=target_id)
        super().__init__(message, context=context, **kwargs)


class AlertDeliveryError(FraudEngineError):
    """A single alert channel failed to deliver."""
    
    default_severity = Severity.LOW
    default_classification = ErrorClassification.TRANSIENT
    
    def __init__(self, message: str, channel: Optional[str] = None, **kwargs):
        super().__init__(message, context=_context_with(kwargs, channel=channel), **kwargs)


# ============================================================
# SCHEDULING ERRORS
# ============================================================

class SchedulingError(FraudEngineError):
    default_severity = Severity.HIGH


class JobLockedError(SchedulingError):
    """Another run of the same job holds the lock."""
    
    default_severity = Severity.LOW
    default_classification = ErrorClassification.TRANSIENT
    
    def __init__(self, job_name: str, holder: Optional[str] = None):
        super().__init__(
            f"Job already running: {job_name}",
            context=_context_with({}, job_name=job_name, holder=holder),
        )


class JobNotFoundError(SchedulingError):
    """No job is registered under the requested name."""
    
    default_classification = ErrorClassification.NON_RECOVERABLE
    
    def __init__(self, job_name: str):
        super().__init__(f"Unknown job: {job_name}", context={"job_name": job_name})


__all__ = [
    "Severity",
    "ErrorClassification",
    "FraudEngineError",
    "ConfigurationError",
    "MissingConfigError",
    "InvalidConfigError",
    "DataSourceError",
    "DataSourceUnavailableError",
    "PersistenceError",
    "AuthorizationError",
    "UnauthenticatedError",
    "PermissionDeniedError",
    "RemediationError",
    "AlertDeliveryError",
    "SchedulingError",
    "JobLockedError",
    "JobNotFoundError",
]

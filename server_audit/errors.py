from __future__ import annotations


class AuditError(Exception):
    """Base class for errors raised by server-audit."""


class PreconditionFailure(AuditError):
    """Raised before any probe runs when the audit cannot start."""


class ConfigError(PreconditionFailure):
    """Invalid configuration file or invocation option."""

"""One-shot Linux server audit."""

from server_audit.assembler import SnapshotAssembler
from server_audit.config import AppConfig, AuditOptions, load_config
from server_audit.render import encode_document, render_document, render_text
from server_audit.report import Report
from server_audit.runner import ProbeRunner
from server_audit.schema import validate_document

__all__ = [
    "AppConfig",
    "AuditOptions",
    "ProbeRunner",
    "Report",
    "SnapshotAssembler",
    "encode_document",
    "load_config",
    "render_document",
    "render_text",
    "validate_document",
]

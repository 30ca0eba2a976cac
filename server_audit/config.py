from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
import configparser

from server_audit.errors import ConfigError

OUTPUT_FORMATS = ("text", "json")


@dataclass(frozen=True)
class AuditOptions:
    run_fio: bool = False
    iperf_server: str = ""
    output_format: str = "text"


@dataclass(frozen=True)
class ToolPaths:
    hostname_path: str = "hostname"
    uname_path: str = "uname"
    nproc_path: str = "nproc"
    smartctl_path: str = "smartctl"
    mdadm_path: str = "mdadm"
    iostat_path: str = "iostat"
    ip_path: str = "ip"
    ss_path: str = "ss"
    ps_path: str = "ps"
    nvidia_smi_path: str = "nvidia-smi"
    lspci_path: str = "lspci"
    fio_path: str = "fio"
    iperf3_path: str = "iperf3"


@dataclass(frozen=True)
class ProbeSettings:
    default_timeout_s: int = 15
    smart_timeout_s: int = 30
    fio_timeout_s: int = 120
    iperf_timeout_s: int = 40
    # Per-job runtime; jobs are stonewalled so the total is roughly 4x this.
    fio_runtime_s: int = 8
    # tmpfs rejects O_DIRECT, so direct I/O is only useful with fio_directory.
    fio_direct: bool = False
    fio_directory: str | None = None
    iperf_duration_s: int = 10
    top_processes: int = 19
    iostat_interval_s: int = 1
    iostat_count: int = 2


@dataclass(frozen=True)
class WorkspaceConfig:
    base_dir: str = "/dev/shm"
    prefix: str = "server_audit_"


@dataclass(frozen=True)
class AppConfig:
    options: AuditOptions
    tools: ToolPaths
    probes: ProbeSettings
    workspace: WorkspaceConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_positive_int(
    parser: configparser.ConfigParser, section: str, key: str, fallback: int
) -> int:
    try:
        value = parser.getint(section, key, fallback=fallback)
    except ValueError as exc:
        raise ConfigError(f"[{section}] {key} must be an integer") from exc
    if value < 1:
        raise ConfigError(f"[{section}] {key} must be at least 1, got {value}")
    return value


def _get_boolean(
    parser: configparser.ConfigParser, section: str, key: str, fallback: bool
) -> bool:
    try:
        return parser.getboolean(section, key, fallback=fallback)
    except ValueError as exc:
        raise ConfigError(f"[{section}] {key} must be a boolean") from exc


def validate_options(options: AuditOptions) -> AuditOptions:
    """Reject option values that would make the run meaningless or unsafe."""
    if options.output_format not in OUTPUT_FORMATS:
        raise ConfigError(
            f"Unknown output format {options.output_format!r}; "
            f"expected one of {', '.join(OUTPUT_FORMATS)}"
        )
    server = options.iperf_server
    if server and (server.startswith("-") or any(ch.isspace() for ch in server)):
        raise ConfigError(f"Invalid iperf3 server {server!r}")
    return options


def merge_options(
    options: AuditOptions,
    run_fio: bool | None = None,
    iperf_server: str | None = None,
    output_format: str | None = None,
) -> AuditOptions:
    """Overlay command-line values on the options read from the config file."""
    updates: dict[str, object] = {}
    if run_fio is not None:
        updates["run_fio"] = run_fio
    if iperf_server is not None:
        updates["iperf_server"] = iperf_server.strip()
    if output_format is not None:
        updates["output_format"] = output_format
    return validate_options(replace(options, **updates))


def load_config(path: str | Path | None = None) -> AppConfig:
    parser = configparser.ConfigParser()
    if path is not None:
        read_files = parser.read(path)
        if not read_files:
            raise ConfigError(f"Config file not found: {path}")

    options = AuditOptions(
        run_fio=_get_boolean(parser, "audit", "run_fio", False),
        iperf_server=(parser.get("audit", "iperf_server", fallback="") or "").strip(),
        output_format=parser.get("audit", "output_format", fallback="text").strip(),
    )

    defaults = ToolPaths()
    tools = ToolPaths(
        **{
            name: parser.get("tools", name, fallback=getattr(defaults, name))
            for name in defaults.__dataclass_fields__
        }
    )

    # Use parser.get/getint with fallback to handle a missing [probes] section
    probes = ProbeSettings(
        default_timeout_s=_get_positive_int(parser, "probes", "default_timeout_s", 15),
        smart_timeout_s=_get_positive_int(parser, "probes", "smart_timeout_s", 30),
        fio_timeout_s=_get_positive_int(parser, "probes", "fio_timeout_s", 120),
        iperf_timeout_s=_get_positive_int(parser, "probes", "iperf_timeout_s", 40),
        fio_runtime_s=_get_positive_int(parser, "probes", "fio_runtime_s", 8),
        fio_direct=_get_boolean(parser, "probes", "fio_direct", False),
        fio_directory=_get_optional(parser.get("probes", "fio_directory", fallback=None)),
        iperf_duration_s=_get_positive_int(parser, "probes", "iperf_duration_s", 10),
        top_processes=_get_positive_int(parser, "probes", "top_processes", 19),
        iostat_interval_s=_get_positive_int(parser, "probes", "iostat_interval_s", 1),
        iostat_count=_get_positive_int(parser, "probes", "iostat_count", 2),
    )

    workspace = WorkspaceConfig(
        base_dir=parser.get("workspace", "base_dir", fallback="/dev/shm"),
        prefix=parser.get("workspace", "prefix", fallback="server_audit_"),
    )

    return AppConfig(
        options=validate_options(options),
        tools=tools,
        probes=probes,
        workspace=workspace,
    )

"""Parsers that turn raw probe output into typed fields.

All functions here are pure and total: a missing label yields the documented
default (empty string, zero, empty tuple or ``None``) rather than an error.
"""

from __future__ import annotations

import re

from server_audit.report import (
    FioJob,
    GpuEntry,
    InterfaceEntry,
    IperfSummary,
    ProcessEntry,
    SmartSummary,
)

KIB = 1024

# RAW_VALUE column in the smartctl -A attribute table
SMART_RAW_COLUMN = 9
SMART_REALLOCATED = ("Reallocated_Sector_Ct",)
SMART_PENDING = ("Current_Pending_Sector",)
SMART_TEMPERATURE = ("Temperature_Celsius", "Airflow_Temperature_Cel")

NVIDIA_QUERY_FIELDS = (
    "index",
    "name",
    "driver_version",
    "memory.total",
    "memory.used",
    "utilization.gpu",
    "temperature.gpu",
)

_CPU_MODEL_RE = re.compile(r"^\s*model name\s*:(.*)$", re.IGNORECASE | re.MULTILINE)
_PRETTY_NAME_RE = re.compile(r"^PRETTY_NAME=(.*)$", re.MULTILINE)
_NVME_TEMPERATURE_RE = re.compile(r"^Temperature:\s+(\d+)\s+Celsius", re.MULTILINE)
_GPU_BUS_RE = re.compile(r"vga|3d|display", re.IGNORECASE)
_FIO_JOB_RE = re.compile(r"^(\S+): \(groupid=\d+")
_FIO_IO_RE = re.compile(r"^\s*(read|write)\s*:\s*IOPS=([^,]+),\s*BW=(\S+)")
_IPERF_SUMMARY_RE = re.compile(
    r"([\d.]+\s+[KMGT]?bits/sec)(?:\s+(\d+))?\s+(sender|receiver)\s*$"
)


def first_line(raw: str) -> str:
    for line in raw.splitlines():
        if line.strip():
            return line.strip()
    return ""


def parse_int(raw: str) -> int:
    """First whitespace token as an integer, or 0."""
    tokens = raw.split()
    if not tokens:
        return 0
    try:
        return int(tokens[0])
    except ValueError:
        return 0


def parse_cpu_model(raw: str) -> str:
    match = _CPU_MODEL_RE.search(raw)
    return match.group(1).strip() if match else ""


def _meminfo_bytes(raw: str, label: str) -> int:
    match = re.search(rf"^{label}:\D*(\d+)", raw, re.MULTILINE)
    if not match:
        return 0
    # /proc/meminfo says "kB" but means KiB
    return int(match.group(1)) * KIB


def parse_meminfo(raw: str) -> tuple[int, int]:
    """Return ``(total_bytes, available_bytes)`` from /proc/meminfo text."""
    return _meminfo_bytes(raw, "MemTotal"), _meminfo_bytes(raw, "MemAvailable")


def parse_os_release(raw: str) -> str:
    match = _PRETTY_NAME_RE.search(raw)
    if not match:
        return ""
    return match.group(1).strip().strip("\"'")


def parse_uptime(raw: str) -> int:
    tokens = raw.split()
    if not tokens:
        return 0
    try:
        return int(float(tokens[0]))
    except ValueError:
        return 0


def parse_loadavg(raw: str) -> tuple[float, float, float]:
    tokens = raw.split()
    try:
        load_1m, load_5m, load_15m = (float(token) for token in tokens[:3])
    except ValueError:
        return (0.0, 0.0, 0.0)
    return (load_1m, load_5m, load_15m)


def parse_smart_health(raw: str) -> str:
    for line in raw.splitlines():
        # ATA/NVMe use "overall-health", SAS drives report "SMART Health Status"
        if "overall-health" in line or "SMART Health Status" in line:
            _, sep, value = line.partition(":")
            if sep:
                return value.strip()
    return ""


def smart_attribute(raw: str, names: tuple[str, ...]) -> str:
    """RAW_VALUE of the first attribute row whose name is in ``names``."""
    for name in names:
        for line in raw.splitlines():
            columns = line.split()
            if len(columns) > SMART_RAW_COLUMN and columns[1] == name:
                return columns[SMART_RAW_COLUMN]
    return ""


def parse_smart(raw: str) -> SmartSummary:
    temperature = smart_attribute(raw, SMART_TEMPERATURE)
    if not temperature:
        match = _NVME_TEMPERATURE_RE.search(raw)
        if match:
            temperature = match.group(1)
    return SmartSummary(
        health=parse_smart_health(raw),
        reallocated_sectors=smart_attribute(raw, SMART_REALLOCATED),
        pending_sectors=smart_attribute(raw, SMART_PENDING),
        temperature_c=temperature,
    )


def parse_mdadm_scan(raw: str) -> tuple[str, ...]:
    arrays = []
    for line in raw.splitlines():
        tokens = line.split()
        if len(tokens) >= 2 and tokens[0] == "ARRAY":
            arrays.append(tokens[1])
    return tuple(arrays)


def parse_diskstats(raw: str, limit: int = 40) -> str:
    """Device name and the I/O counters that follow it, one row per device."""
    rows = []
    for line in raw.splitlines()[:limit]:
        columns = line.split()
        if len(columns) >= 3:
            rows.append(" ".join(columns[2:12]))
    return "\n".join(rows)


def _gpu_cell(value: str) -> int:
    # nvidia-smi prints "[N/A]" or "[Not Supported]" for cells it cannot fill
    try:
        return int(float(value))
    except ValueError:
        return 0


def parse_nvidia_smi(raw: str) -> tuple[GpuEntry, ...]:
    entries = []
    for line in raw.splitlines():
        cells = [cell.strip() for cell in line.split(",")]
        if len(cells) != len(NVIDIA_QUERY_FIELDS) or not cells[0].isdigit():
            continue
        entries.append(
            GpuEntry(
                index=int(cells[0]),
                vendor="NVIDIA",
                model=cells[1],
                driver_version=cells[2],
                memory_total_mb=_gpu_cell(cells[3]),
                memory_used_mb=_gpu_cell(cells[4]),
                utilization_pct=_gpu_cell(cells[5]),
                temperature_c=_gpu_cell(cells[6]),
                raw=line.strip(),
            )
        )
    return tuple(entries)


def parse_lspci_gpus(raw: str) -> tuple[GpuEntry, ...]:
    lines = [line.strip() for line in raw.splitlines() if _GPU_BUS_RE.search(line)]
    return tuple(
        GpuEntry(index=index, model=line, raw=line) for index, line in enumerate(lines)
    )


def parse_ip_brief(raw: str) -> tuple[InterfaceEntry, ...]:
    interfaces = []
    for line in raw.splitlines():
        tokens = line.split()
        if len(tokens) < 2:
            continue
        interfaces.append(
            InterfaceEntry(name=tokens[0], state=tokens[1], addresses=tuple(tokens[2:]))
        )
    return tuple(interfaces)


def parse_default_route(raw: str) -> str:
    for line in raw.splitlines():
        if line.startswith("default"):
            return line.strip()
    return ""


def parse_processes(raw: str, limit: int = 19) -> tuple[ProcessEntry, ...]:
    """Parse ``ps -eo pid,ppid,%mem,%cpu,args`` output, header skipped."""
    processes: list[ProcessEntry] = []
    for line in raw.splitlines()[1:]:
        if len(processes) >= limit:
            break
        parts = line.split(None, 4)
        if len(parts) < 4:
            continue
        try:
            entry = ProcessEntry(
                pid=int(parts[0]),
                ppid=int(parts[1]),
                mem_pct=float(parts[2]),
                cpu_pct=float(parts[3]),
                command=parts[4].strip() if len(parts) == 5 else "",
            )
        except ValueError:
            continue
        processes.append(entry)
    return tuple(processes)


def parse_fio(raw: str) -> tuple[FioJob, ...]:
    jobs = []
    current = ""
    for line in raw.splitlines():
        header = _FIO_JOB_RE.match(line)
        if header:
            current = header.group(1)
            continue
        io_line = _FIO_IO_RE.match(line)
        if io_line and current:
            direction, iops, bandwidth = io_line.groups()
            jobs.append(
                FioJob(
                    name=current,
                    direction=direction,
                    iops=iops.strip(),
                    bandwidth=bandwidth,
                )
            )
    return tuple(jobs)


def parse_iperf3(raw: str) -> IperfSummary | None:
    sender = receiver = ""
    retransmits = None
    for line in raw.splitlines():
        match = _IPERF_SUMMARY_RE.search(line)
        if not match:
            continue
        bitrate, retries, role = match.groups()
        bitrate = " ".join(bitrate.split())
        if role == "sender":
            sender = bitrate
            if retries is not None:
                retransmits = int(retries)
        else:
            receiver = bitrate
    if not sender and not receiver:
        return None
    return IperfSummary(
        sender_bitrate=sender, receiver_bitrate=receiver, retransmits=retransmits
    )

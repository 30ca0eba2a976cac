"""Render a :class:`Report` as human-readable text or a JSON document.

Both renderers read only the report; neither runs probes.
"""

from __future__ import annotations

import json
from typing import Any

from server_audit.report import (
    SCHEMA_NAME,
    SCHEMA_VERSION,
    FioSection,
    GpuEntry,
    GpuSection,
    IperfSection,
    Report,
    SmartSummary,
)

SEPARATOR = "-" * 72
NOT_AVAILABLE = "N/A"
IOSTAT_PREVIEW_LINES = 20
FIO_PREVIEW_LINES = 50


def _or_na(value: str) -> str:
    return value if value else NOT_AVAILABLE


def _or_none(value: str) -> str | None:
    return value if value else None


def _smart_line(device: str, summary: SmartSummary | None) -> str:
    if summary is None:
        return f"  {device} SMART Health: {NOT_AVAILABLE}"
    return (
        f"  {device} SMART Health: {_or_na(summary.health)}, "
        f"Reallocated: {_or_na(summary.reallocated_sectors)}, "
        f"Pending: {_or_na(summary.pending_sectors)}, "
        f"Temp (C): {_or_na(summary.temperature_c)}"
    )


def _gpu_line(entry: GpuEntry) -> str:
    if entry.memory_total_mb is None:
        return f"  {entry.raw}"
    return (
        f"  [{entry.index}] {entry.model} (driver {entry.driver_version}): "
        f"mem {entry.memory_used_mb}/{entry.memory_total_mb} MB, "
        f"util {entry.utilization_pct}%, temp {entry.temperature_c} C"
    )


def _not_run(report: Report, probe: str) -> str:
    status = report.meta.probes.get(probe, "skipped")
    return f"not run ({status})"


def _text_host(report: Report) -> list[str]:
    host = report.host
    lines = [
        "Server Audit Summary",
        f"Generated: {report.meta.generated_at}",
    ]
    if not host.available:
        return lines + ["Host: not available"]
    return lines + [
        f"Host: {host.hostname}",
        f"Kernel: {_or_na(host.kernel)}",
        f"OS: {_or_na(host.os_release)}",
        f"Uptime (sec): {host.uptime_s}",
        "Load avg: " + " ".join(f"{value:.2f}" for value in host.load_average),
    ]


def _text_cpu_memory(report: Report) -> list[str]:
    cpu, memory = report.cpu, report.memory
    lines = []
    if cpu.available:
        lines.append(
            f"CPU: {_or_na(cpu.model)} ({_or_na(cpu.arch)}), "
            f"Logical cores: {cpu.logical_cores}"
        )
    else:
        lines.append("CPU: not available")
    if memory.available:
        lines.append(
            f"Memory: total_bytes={memory.total_b}, "
            f"available_bytes={memory.available_b}"
        )
    else:
        lines.append("Memory: not available")
    return lines


def _text_disks(report: Report) -> list[str]:
    devices = report.disks.devices
    lines = ["Disks detected: " + (" ".join(devices) if devices else "none")]
    if not report.smart.available:
        lines.append("SMART: not available")
        return lines
    for device in devices:
        lines.append(_smart_line(device, report.smart.devices.get(device)))
    return lines


def _text_raid(report: Report) -> list[str]:
    raid = report.raid
    if not raid.available:
        return ["RAID: not available"]
    lines = [f"RAID Present: {str(raid.present).lower()}"]
    if raid.present:
        lines.append(raid.detail)
    return lines


def _text_iostats(report: Report) -> list[str]:
    iostats = report.iostats
    if not iostats.available:
        return ["I/O stats: not available"]
    sample = iostats.sample.splitlines()[:IOSTAT_PREVIEW_LINES]
    return [f"I/O stats (sample, {iostats.source}):"] + sample


def _text_network(report: Report) -> list[str]:
    network = report.network
    if not network.available:
        return ["Network: not available"]
    return [
        "Network Interfaces (brief):",
        _or_na(network.interfaces_text),
        "Routes:",
        _or_na(network.routes_text),
        "Listening sockets:",
        _or_na(network.listening_text),
    ]


def _text_processes(report: Report) -> list[str]:
    if not report.processes.available:
        return ["Top processes: not available"]
    return ["Top processes snapshot:", report.processes.raw]


def _text_gpu(gpu: GpuSection) -> list[str]:
    if not gpu.available:
        return ["GPU: not available"]
    if not gpu.present:
        return [f"GPU: none detected ({gpu.source})"]
    return [f"GPU Info ({gpu.source}):"] + [_gpu_line(entry) for entry in gpu.entries]


def _text_fio(report: Report, fio: FioSection | None) -> list[str]:
    if fio is None:
        return ["FIO: " + _not_run(report, "fio")]
    if not fio.available:
        return ["FIO: not available (failed)"]
    lines = ["FIO Results:"]
    for job in fio.jobs:
        lines.append(f"  {job.name} {job.direction}: IOPS={job.iops}, BW={job.bandwidth}")
    lines.extend(fio.raw.splitlines()[:FIO_PREVIEW_LINES])
    return lines


def _text_iperf(report: Report, iperf: IperfSection | None) -> list[str]:
    if iperf is None:
        return ["iperf3: " + _not_run(report, "iperf3")]
    if not iperf.available:
        return [f"iperf3 ({iperf.server}): not available (failed)"]
    lines = [f"iperf3 Results ({iperf.server}):"]
    if iperf.summary is not None:
        lines.append(
            f"  sender {_or_na(iperf.summary.sender_bitrate)}, "
            f"receiver {_or_na(iperf.summary.receiver_bitrate)}"
        )
    lines.append(iperf.raw.rstrip())
    return lines


def render_text(report: Report) -> str:
    blocks = [
        _text_host(report),
        _text_cpu_memory(report),
        _text_disks(report),
        _text_raid(report),
        _text_iostats(report),
        _text_network(report),
        _text_processes(report),
        _text_gpu(report.gpu),
        _text_fio(report, report.fio),
        _text_iperf(report, report.iperf3),
    ]
    lines = [SEPARATOR]
    for block in blocks:
        lines.extend(block)
        lines.append(SEPARATOR)
    if report.meta.workspace:
        lines.append(
            f"Temporary files were stored in RAM under {report.meta.workspace} "
            "and removed on exit."
        )
    lines.append("Audit finished.")
    return "\n".join(lines) + "\n"


def _gpu_document(entry: GpuEntry) -> dict[str, Any]:
    return {
        "index": entry.index,
        "vendor": _or_none(entry.vendor),
        "model": entry.model,
        "driver_version": _or_none(entry.driver_version),
        "memory_total_mb": entry.memory_total_mb,
        "memory_used_mb": entry.memory_used_mb,
        "utilization_pct": entry.utilization_pct,
        "temperature_c": entry.temperature_c,
        "raw": entry.raw,
    }


def _fio_document(fio: FioSection | None) -> dict[str, Any] | None:
    if fio is None:
        return None
    return {
        "available": fio.available,
        "jobs": [
            {
                "name": job.name,
                "direction": job.direction,
                "iops": job.iops,
                "bandwidth": job.bandwidth,
            }
            for job in fio.jobs
        ],
        "raw": fio.raw,
    }


def _iperf_document(iperf: IperfSection | None) -> dict[str, Any] | None:
    if iperf is None:
        return None
    summary = iperf.summary
    return {
        "available": iperf.available,
        "server": iperf.server,
        "sender_bitrate": _or_none(summary.sender_bitrate) if summary else None,
        "receiver_bitrate": _or_none(summary.receiver_bitrate) if summary else None,
        "retransmits": summary.retransmits if summary else None,
        "raw": iperf.raw,
    }


def render_document(report: Report) -> dict[str, Any]:
    """Build the structured document. Every section is always present."""
    meta, host, cpu, memory = report.meta, report.host, report.cpu, report.memory
    network, processes, gpu = report.network, report.processes, report.gpu
    return {
        "schema": {"name": SCHEMA_NAME, "version": SCHEMA_VERSION},
        "meta": {
            "generated_at": meta.generated_at,
            "options": {"run_fio": meta.run_fio, "iperf_server": meta.iperf_server},
            "tools": dict(meta.tools),
            "probes": dict(meta.probes),
        },
        "host": {
            "available": host.available,
            "hostname": host.hostname,
            "kernel": host.kernel,
            "os_release": host.os_release,
            "uptime_s": host.uptime_s,
            "load_average": list(host.load_average),
        },
        "cpu": {
            "available": cpu.available,
            "model": cpu.model,
            "arch": cpu.arch,
            "logical_cores": cpu.logical_cores,
        },
        "memory": {
            "available": memory.available,
            "total_b": memory.total_b,
            "available_b": memory.available_b,
        },
        "disks": {
            "available": report.disks.available,
            "devices": list(report.disks.devices),
        },
        "smart": {
            "available": report.smart.available,
            "devices": {
                device: {
                    "health": _or_none(summary.health),
                    "reallocated_sectors": _or_none(summary.reallocated_sectors),
                    "pending_sectors": _or_none(summary.pending_sectors),
                    "temperature_c": _or_none(summary.temperature_c),
                }
                for device, summary in sorted(report.smart.devices.items())
            },
        },
        "raid": {
            "available": report.raid.available,
            "present": report.raid.present,
            "arrays": list(report.raid.arrays),
            "detail": report.raid.detail,
        },
        "iostats": {
            "available": report.iostats.available,
            "source": _or_none(report.iostats.source),
            "sample": report.iostats.sample,
        },
        "network": {
            "available": network.available,
            "interfaces": [
                {
                    "name": iface.name,
                    "state": iface.state,
                    "addresses": list(iface.addresses),
                }
                for iface in network.interfaces
            ],
            "default_route": _or_none(network.default_route),
            "interfaces_text": network.interfaces_text,
            "routes_text": network.routes_text,
            "listening_text": network.listening_text,
        },
        "processes": {
            "available": processes.available,
            "top": [
                {
                    "pid": proc.pid,
                    "ppid": proc.ppid,
                    "mem_pct": proc.mem_pct,
                    "cpu_pct": proc.cpu_pct,
                    "command": proc.command,
                }
                for proc in processes.top
            ],
        },
        "gpu": {
            "available": gpu.available,
            "present": gpu.present,
            "source": _or_none(gpu.source),
            "entries": [_gpu_document(entry) for entry in gpu.entries],
        },
        "fio": _fio_document(report.fio),
        "iperf3": _iperf_document(report.iperf3),
    }


def encode(document: dict[str, Any], pretty: bool = True) -> str:
    """Serialise an already rendered document."""
    return json.dumps(document, indent=2) if pretty else json.dumps(document)


def encode_document(report: Report, pretty: bool = True) -> str:
    return encode(render_document(report), pretty)

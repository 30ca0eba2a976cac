"""Immutable snapshot of one audit run.

Every section carries its own ``available`` flag so that a failed probe
degrades only the section it feeds. Defaults on each dataclass are the
values a section holds when its probe could not produce data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

SCHEMA_NAME = "server-audit"
SCHEMA_VERSION = 1


@dataclass(frozen=True)
class HostSection:
    available: bool = False
    hostname: str = ""
    kernel: str = ""
    os_release: str = ""
    uptime_s: int = 0
    load_average: tuple[float, float, float] = (0.0, 0.0, 0.0)


@dataclass(frozen=True)
class CpuSection:
    available: bool = False
    model: str = ""
    arch: str = ""
    logical_cores: int = 0


@dataclass(frozen=True)
class MemorySection:
    available: bool = False
    total_b: int = 0
    available_b: int = 0


@dataclass(frozen=True)
class SmartSummary:
    """SMART fields for one disk; empty strings mean the tool did not report them."""

    health: str = ""
    reallocated_sectors: str = ""
    pending_sectors: str = ""
    temperature_c: str = ""


@dataclass(frozen=True)
class DisksSection:
    available: bool = False
    devices: tuple[str, ...] = ()


@dataclass(frozen=True)
class SmartSection:
    available: bool = False
    devices: Mapping[str, SmartSummary] = field(
        default_factory=lambda: MappingProxyType({})
    )


@dataclass(frozen=True)
class RaidSection:
    available: bool = False
    present: bool = False
    arrays: tuple[str, ...] = ()
    detail: str = ""


@dataclass(frozen=True)
class IoStatsSection:
    available: bool = False
    source: str = ""
    sample: str = ""


@dataclass(frozen=True)
class InterfaceEntry:
    name: str
    state: str
    addresses: tuple[str, ...] = ()


@dataclass(frozen=True)
class NetworkSection:
    available: bool = False
    interfaces: tuple[InterfaceEntry, ...] = ()
    default_route: str = ""
    interfaces_text: str = ""
    routes_text: str = ""
    listening_text: str = ""


@dataclass(frozen=True)
class ProcessEntry:
    pid: int
    ppid: int
    mem_pct: float
    cpu_pct: float
    command: str


@dataclass(frozen=True)
class ProcessesSection:
    available: bool = False
    top: tuple[ProcessEntry, ...] = ()
    raw: str = ""


@dataclass(frozen=True)
class GpuEntry:
    """One GPU. Fallback entries carry only ``model``/``raw`` and no numbers."""

    index: int
    vendor: str = ""
    model: str = ""
    driver_version: str = ""
    memory_total_mb: int | None = None
    memory_used_mb: int | None = None
    utilization_pct: int | None = None
    temperature_c: int | None = None
    raw: str = ""


@dataclass(frozen=True)
class GpuSection:
    available: bool = False
    present: bool = False
    source: str = ""
    entries: tuple[GpuEntry, ...] = ()


@dataclass(frozen=True)
class FioJob:
    name: str
    direction: str
    iops: str
    bandwidth: str


@dataclass(frozen=True)
class FioSection:
    available: bool = False
    jobs: tuple[FioJob, ...] = ()
    raw: str = ""


@dataclass(frozen=True)
class IperfSummary:
    sender_bitrate: str = ""
    receiver_bitrate: str = ""
    retransmits: int | None = None


@dataclass(frozen=True)
class IperfSection:
    available: bool = False
    server: str = ""
    summary: IperfSummary | None = None
    raw: str = ""


@dataclass(frozen=True)
class MetaSection:
    generated_at: str
    run_fio: bool = False
    iperf_server: str = ""
    tools: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    probes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    workspace: str = ""


@dataclass(frozen=True)
class Report:
    meta: MetaSection
    host: HostSection = field(default_factory=HostSection)
    cpu: CpuSection = field(default_factory=CpuSection)
    memory: MemorySection = field(default_factory=MemorySection)
    disks: DisksSection = field(default_factory=DisksSection)
    smart: SmartSection = field(default_factory=SmartSection)
    raid: RaidSection = field(default_factory=RaidSection)
    iostats: IoStatsSection = field(default_factory=IoStatsSection)
    network: NetworkSection = field(default_factory=NetworkSection)
    processes: ProcessesSection = field(default_factory=ProcessesSection)
    gpu: GpuSection = field(default_factory=GpuSection)
    fio: FioSection | None = None
    iperf3: IperfSection | None = None

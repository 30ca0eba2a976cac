from __future__ import annotations

from datetime import datetime, timezone
import glob
import logging
from pathlib import Path
import shutil
import socket
from types import MappingProxyType
from typing import Any, Callable, TypeVar

from server_audit.config import AppConfig
from server_audit.outcome import (
    BinaryMissing,
    ExecutionFailed,
    Outcome,
    Skipped,
    Success,
    raw_text,
)
from server_audit.registry import FIO_JOBS, ProbeSpec, build_registry, registry_by_name
from server_audit.report import (
    CpuSection,
    DisksSection,
    FioSection,
    GpuSection,
    HostSection,
    IoStatsSection,
    IperfSection,
    MemorySection,
    MetaSection,
    NetworkSection,
    ProcessesSection,
    RaidSection,
    Report,
    SmartSection,
)
from server_audit.runner import ProbeRunner

DISK_PATTERNS = ("/dev/sd[a-z]", "/dev/nvme?n1")

# Report key -> ToolPaths attribute, for the tool availability summary
OPTIONAL_TOOLS = (
    ("smartctl", "smartctl_path"),
    ("mdadm", "mdadm_path"),
    ("iostat", "iostat_path"),
    ("nvidia_smi", "nvidia_smi_path"),
    ("lspci", "lspci_path"),
    ("fio", "fio_path"),
    ("iperf3", "iperf3_path"),
)

SectionT = TypeVar("SectionT")


def discover_disks(patterns: tuple[str, ...] = DISK_PATTERNS) -> tuple[str, ...]:
    devices: list[str] = []
    for pattern in patterns:
        devices.extend(sorted(glob.glob(pattern)))
    return tuple(devices)


def fio_job_file(directory: str, runtime_s: int, direct: bool) -> str:
    """Render the fio job description; jobs are stonewalled to run one at a time."""
    lines = [
        "[global]",
        "ioengine=libaio",
        f"direct={1 if direct else 0}",
        "time_based=1",
        f"runtime={runtime_s}",
        "group_reporting=1",
        "bs=1M",
        "size=64M",
        f"directory={directory}",
        "unlink=1",
    ]
    for name, mode, numjobs in FIO_JOBS:
        lines.extend(["", f"[{name}]", f"rw={mode}", f"numjobs={numjobs}", "stonewall"])
    return "\n".join(lines) + "\n"


class SnapshotAssembler:
    """Run every enabled probe in registry order and build one :class:`Report`.

    Probes run strictly one after another. The I/O sample and the
    benchmarks measure system load, so running them alongside other probes
    would skew their numbers.
    """

    def __init__(
        self,
        config: AppConfig,
        runner: ProbeRunner | None = None,
        workspace: str | Path | None = None,
    ) -> None:
        self.config = config
        self.options = config.options
        self.workspace = Path(workspace) if workspace is not None else None
        self.runner = runner or ProbeRunner(self.workspace)
        self.registry = registry_by_name(build_registry(config.tools, config.probes))
        self.outcomes: dict[str, Outcome] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def assemble(self) -> Report:
        self.logger.debug("Assembling audit report.")
        self.outcomes = {}
        generated_at = datetime.now(timezone.utc).isoformat(timespec="seconds")

        host = self._guard("host", self._collect_host, HostSection())
        cpu = self._guard("cpu", self._collect_cpu, CpuSection())
        memory = self._guard("memory", self._collect_memory, MemorySection())
        disks = self._guard("disks", self._collect_disks, DisksSection())
        smart = self._guard(
            "smart", lambda: self._collect_smart(disks.devices), SmartSection()
        )
        raid = self._guard("raid", self._collect_raid, RaidSection())
        iostats = self._guard("iostats", self._collect_iostats, IoStatsSection())
        network = self._guard("network", self._collect_network, NetworkSection())
        processes = self._guard("processes", self._collect_processes, ProcessesSection())
        gpu = self._guard("gpu", self._collect_gpu, GpuSection())
        fio = self._guard("fio", self._collect_fio, None)
        iperf3 = self._guard("iperf3", self._collect_iperf3, None)

        meta = MetaSection(
            generated_at=generated_at,
            run_fio=self.options.run_fio,
            iperf_server=self.options.iperf_server,
            tools=MappingProxyType(self._tool_availability()),
            probes=MappingProxyType(
                {name: outcome.status for name, outcome in self.outcomes.items()}
            ),
            workspace=str(self.workspace) if self.workspace is not None else "",
        )
        self.logger.debug("Completed audit report assembly.")
        return Report(
            meta=meta,
            host=host,
            cpu=cpu,
            memory=memory,
            disks=disks,
            smart=smart,
            raid=raid,
            iostats=iostats,
            network=network,
            processes=processes,
            gpu=gpu,
            fio=fio,
            iperf3=iperf3,
        )

    def _guard(
        self, section: str, builder: Callable[[], SectionT], default: SectionT
    ) -> SectionT:
        try:
            return builder()
        except Exception:
            self.logger.warning("Failed to assemble %s section.", section, exc_info=True)
            return default

    def _probe(self, name: str, **values: str) -> Outcome:
        spec = self.registry[name]
        if values:
            spec = spec.bind(**values)
        outcome = self.runner.run(spec)
        self.outcomes[spec.name] = outcome
        return outcome

    def _skip(self, name: str, reason: str) -> None:
        self.logger.debug("Probe %s skipped: %s", name, reason)
        self.outcomes[name] = Skipped(reason=reason)

    def _value(self, name: str, outcome: Outcome, default: Any) -> Any:
        if isinstance(outcome, Success):
            return self.registry[name].extract(outcome.raw)
        return default

    def _tool_availability(self) -> dict[str, bool]:
        return {
            key: shutil.which(getattr(self.config.tools, attr)) is not None
            for key, attr in OPTIONAL_TOOLS
        }

    def _collect_host(self) -> HostSection:
        outcomes = {
            name: self._probe(name)
            for name in ("hostname", "kernel", "os_release", "uptime", "loadavg")
        }
        hostname_outcome = outcomes["hostname"]
        hostname = ""
        if isinstance(hostname_outcome, Success):
            # hostname -f exits non-zero when no FQDN resolves
            if hostname_outcome.exit_status == 0:
                hostname = self._value("hostname", hostname_outcome, "")
            if not hostname:
                hostname = socket.gethostname()
        return HostSection(
            available=any(isinstance(o, Success) for o in outcomes.values()),
            hostname=hostname,
            kernel=self._value("kernel", outcomes["kernel"], ""),
            os_release=self._value("os_release", outcomes["os_release"], ""),
            uptime_s=self._value("uptime", outcomes["uptime"], 0),
            load_average=self._value("loadavg", outcomes["loadavg"], (0.0, 0.0, 0.0)),
        )

    def _collect_cpu(self) -> CpuSection:
        outcomes = {name: self._probe(name) for name in ("cpuinfo", "arch", "nproc")}
        return CpuSection(
            available=any(isinstance(o, Success) for o in outcomes.values()),
            model=self._value("cpuinfo", outcomes["cpuinfo"], ""),
            arch=self._value("arch", outcomes["arch"], ""),
            logical_cores=self._value("nproc", outcomes["nproc"], 0),
        )

    def _collect_memory(self) -> MemorySection:
        outcome = self._probe("meminfo")
        total_b, available_b = self._value("meminfo", outcome, (0, 0))
        return MemorySection(
            available=isinstance(outcome, Success) and total_b > 0,
            total_b=total_b,
            available_b=available_b,
        )

    def _collect_disks(self) -> DisksSection:
        return DisksSection(available=True, devices=discover_disks())

    def _collect_smart(self, devices: tuple[str, ...]) -> SmartSection:
        if not devices:
            self._skip("smart", "no disks found")
            return SmartSection()
        summaries = {}
        for device in devices:
            outcome = self._probe("smart", device=device)
            if isinstance(outcome, BinaryMissing):
                break
            if isinstance(outcome, Success):
                summaries[device] = self._value("smart", outcome, None)
            else:
                self.logger.debug("SMART data unavailable for %s.", device)
        return SmartSection(
            available=bool(summaries),
            devices=MappingProxyType(dict(sorted(summaries.items()))),
        )

    def _collect_raid(self) -> RaidSection:
        outcome = self._probe("raid")
        if not isinstance(outcome, Success):
            return RaidSection()
        arrays = self._value("raid", outcome, ())
        return RaidSection(
            available=True,
            present=bool(arrays),
            arrays=arrays,
            detail=outcome.raw.strip(),
        )

    def _collect_iostats(self) -> IoStatsSection:
        outcome = self._probe("iostat")
        if isinstance(outcome, Success):
            self._skip("diskstats", "iostat available")
            return IoStatsSection(available=True, source="iostat", sample=outcome.raw)
        if not isinstance(outcome, BinaryMissing):
            self._skip("diskstats", "iostat failed")
            return IoStatsSection()
        fallback = self._probe("diskstats")
        if not isinstance(fallback, Success):
            return IoStatsSection()
        return IoStatsSection(
            available=True,
            source="diskstats",
            sample=self._value("diskstats", fallback, ""),
        )

    def _collect_network(self) -> NetworkSection:
        outcomes = {name: self._probe(name) for name in ("ip_addr", "ip_route", "sockets")}
        return NetworkSection(
            available=any(isinstance(o, Success) for o in outcomes.values()),
            interfaces=self._value("ip_addr", outcomes["ip_addr"], ()),
            default_route=self._value("ip_route", outcomes["ip_route"], ""),
            interfaces_text=raw_text(outcomes["ip_addr"]).strip(),
            routes_text=raw_text(outcomes["ip_route"]).strip(),
            listening_text=raw_text(outcomes["sockets"]).strip(),
        )

    def _collect_processes(self) -> ProcessesSection:
        outcome = self._probe("processes")
        if not isinstance(outcome, Success):
            return ProcessesSection()
        top = self._value("processes", outcome, ())
        lines = outcome.raw.splitlines()[: self.config.probes.top_processes + 1]
        return ProcessesSection(available=bool(top), top=top, raw="\n".join(lines))

    def _collect_gpu(self) -> GpuSection:
        outcome = self._probe("gpu_vendor")
        if isinstance(outcome, Success):
            self._skip("gpu_bus", "vendor tool available")
            entries = self._value("gpu_vendor", outcome, ())
            return GpuSection(
                available=True,
                present=bool(entries),
                source="nvidia-smi",
                entries=entries,
            )
        if not isinstance(outcome, BinaryMissing):
            self._skip("gpu_bus", "vendor tool failed")
            return GpuSection()
        fallback = self._probe("gpu_bus")
        if not isinstance(fallback, Success):
            return GpuSection()
        entries = self._value("gpu_bus", fallback, ())
        return GpuSection(
            available=True, present=bool(entries), source="lspci", entries=entries
        )

    def _collect_fio(self) -> FioSection | None:
        if not self.options.run_fio:
            self._skip("fio", "not requested")
            return None
        if self.workspace is None:
            self._skip("fio", "no scratch workspace")
            return None
        fio_dir = self.workspace / "fio"
        fio_dir.mkdir(mode=0o700, exist_ok=True)
        data_dir = self.config.probes.fio_directory or str(fio_dir)
        job_file = fio_dir / "fio_job.job"
        job_file.write_text(
            fio_job_file(data_dir, self.config.probes.fio_runtime_s, self.config.probes.fio_direct)
        )
        self.logger.info("Running fio benchmark in %s.", data_dir)
        outcome = self._probe("fio", job_file=str(job_file))
        if isinstance(outcome, BinaryMissing):
            return None
        if isinstance(outcome, ExecutionFailed):
            return FioSection(available=False, raw=outcome.raw or outcome.detail)
        jobs = self._value("fio", outcome, ())
        return FioSection(
            available=outcome.exit_status == 0 or bool(jobs), jobs=jobs, raw=outcome.raw
        )

    def _collect_iperf3(self) -> IperfSection | None:
        server = self.options.iperf_server
        if not server:
            self._skip("iperf3", "no server configured")
            return None
        self.logger.info("Running iperf3 against %s.", server)
        outcome = self._probe("iperf3", server=server)
        if isinstance(outcome, BinaryMissing):
            return None
        if isinstance(outcome, ExecutionFailed):
            return IperfSection(
                available=False, server=server, raw=outcome.raw or outcome.detail
            )
        summary = self._value("iperf3", outcome, None)
        return IperfSection(
            available=summary is not None,
            server=server,
            summary=summary,
            raw=outcome.raw,
        )


def specs_for(config: AppConfig) -> tuple[ProbeSpec, ...]:
    """The probes a run with ``config`` may execute, in execution order."""
    return tuple(
        spec
        for spec in build_registry(config.tools, config.probes)
        if spec.enabled_by_default
        or (spec.name == "fio" and config.options.run_fio)
        or (spec.name == "iperf3" and bool(config.options.iperf_server))
    )

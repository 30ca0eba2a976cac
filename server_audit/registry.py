"""The fixed, ordered table of probes an audit may run."""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import partial
import re
from typing import Any, Callable

from server_audit import extractors
from server_audit.config import ProbeSettings, ToolPaths

STANDARD = "standard"
ADVANCED_IO = "advanced-io"
ADVANCED_NETWORK = "advanced-network"

# name, rw mode, numjobs; jobs are stonewalled so they run one after another
FIO_JOBS = (
    ("randread", "randread", 2),
    ("randwrite", "randwrite", 2),
    ("seqwrite", "write", 1),
    ("seqread", "read", 1),
)

_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(frozen=True)
class ProbeSpec:
    """How to run one probe and which extractor reads its output.

    Either ``command`` is set (an external program) or ``source_path`` is
    (a kernel pseudo-file that is read instead of executed). Command
    arguments may contain ``{placeholders}`` that :meth:`bind` fills in.
    """

    name: str
    section: str
    command: tuple[str, ...] = ()
    source_path: str | None = None
    binaries: tuple[str, ...] = ()
    enabled_by_default: bool = True
    category: str = STANDARD
    timeout_s: int = 15
    fallback_for: str | None = None
    extractor: Callable[[str], Any] | None = None

    @property
    def required_binaries(self) -> tuple[str, ...]:
        if self.binaries:
            return self.binaries
        if self.command:
            return (self.command[0],)
        return ()

    @property
    def key(self) -> str:
        """File-system safe identifier, used for scratch output files."""
        return _KEY_RE.sub("_", self.name.replace("/dev/", "")).strip("_")

    def bind(self, **values: str) -> ProbeSpec:
        command = tuple(arg.format(**values) for arg in self.command)
        name = self.name
        if "device" in values:
            name = f"{self.name}:{values['device']}"
        return replace(self, name=name, command=command)

    def extract(self, raw: str) -> Any:
        if self.extractor is None:
            return raw
        return self.extractor(raw)


def build_registry(tools: ToolPaths, probes: ProbeSettings) -> tuple[ProbeSpec, ...]:
    iostat_timeout = probes.default_timeout_s + probes.iostat_interval_s * probes.iostat_count
    # the configured benchmark timeouts are slack on top of the run length
    fio_timeout = probes.fio_timeout_s + len(FIO_JOBS) * probes.fio_runtime_s
    iperf_timeout = probes.iperf_timeout_s + probes.iperf_duration_s
    return (
        ProbeSpec(
            "hostname",
            "host",
            command=(tools.hostname_path, "-f"),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.first_line,
        ),
        ProbeSpec(
            "kernel",
            "host",
            command=(tools.uname_path, "-srmo"),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.first_line,
        ),
        ProbeSpec(
            "os_release",
            "host",
            source_path="/etc/os-release",
            extractor=extractors.parse_os_release,
        ),
        ProbeSpec(
            "uptime",
            "host",
            source_path="/proc/uptime",
            extractor=extractors.parse_uptime,
        ),
        ProbeSpec(
            "loadavg",
            "host",
            source_path="/proc/loadavg",
            extractor=extractors.parse_loadavg,
        ),
        ProbeSpec(
            "cpuinfo",
            "cpu",
            source_path="/proc/cpuinfo",
            extractor=extractors.parse_cpu_model,
        ),
        ProbeSpec(
            "arch",
            "cpu",
            command=(tools.uname_path, "-m"),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.first_line,
        ),
        ProbeSpec(
            "nproc",
            "cpu",
            command=(tools.nproc_path,),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.parse_int,
        ),
        ProbeSpec(
            "meminfo",
            "memory",
            source_path="/proc/meminfo",
            extractor=extractors.parse_meminfo,
        ),
        ProbeSpec(
            "smart",
            "smart",
            command=(tools.smartctl_path, "-i", "-H", "-A", "{device}"),
            timeout_s=probes.smart_timeout_s,
            extractor=extractors.parse_smart,
        ),
        ProbeSpec(
            "raid",
            "raid",
            command=(tools.mdadm_path, "--detail", "--scan"),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.parse_mdadm_scan,
        ),
        ProbeSpec(
            "iostat",
            "iostats",
            command=(
                tools.iostat_path,
                "-xz",
                str(probes.iostat_interval_s),
                str(probes.iostat_count),
            ),
            timeout_s=iostat_timeout,
        ),
        ProbeSpec(
            "diskstats",
            "iostats",
            source_path="/proc/diskstats",
            fallback_for="iostat",
            extractor=extractors.parse_diskstats,
        ),
        ProbeSpec(
            "ip_addr",
            "network",
            command=(tools.ip_path, "-br", "address"),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.parse_ip_brief,
        ),
        ProbeSpec(
            "ip_route",
            "network",
            command=(tools.ip_path, "route"),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.parse_default_route,
        ),
        ProbeSpec(
            "sockets",
            "network",
            command=(tools.ss_path, "-tunlp"),
            timeout_s=probes.default_timeout_s,
        ),
        ProbeSpec(
            "processes",
            "processes",
            command=(tools.ps_path, "-eo", "pid,ppid,%mem,%cpu,args", "--sort=-%cpu"),
            timeout_s=probes.default_timeout_s,
            extractor=partial(extractors.parse_processes, limit=probes.top_processes),
        ),
        ProbeSpec(
            "gpu_vendor",
            "gpu",
            command=(
                tools.nvidia_smi_path,
                "--query-gpu=" + ",".join(extractors.NVIDIA_QUERY_FIELDS),
                "--format=csv,noheader,nounits",
            ),
            timeout_s=probes.default_timeout_s,
            extractor=extractors.parse_nvidia_smi,
        ),
        ProbeSpec(
            "gpu_bus",
            "gpu",
            command=(tools.lspci_path,),
            timeout_s=probes.default_timeout_s,
            fallback_for="gpu_vendor",
            extractor=extractors.parse_lspci_gpus,
        ),
        ProbeSpec(
            "fio",
            "fio",
            command=(tools.fio_path, "{job_file}"),
            enabled_by_default=False,
            category=ADVANCED_IO,
            timeout_s=fio_timeout,
            extractor=extractors.parse_fio,
        ),
        ProbeSpec(
            "iperf3",
            "iperf3",
            command=(
                tools.iperf3_path,
                "-c",
                "{server}",
                "-t",
                str(probes.iperf_duration_s),
            ),
            enabled_by_default=False,
            category=ADVANCED_NETWORK,
            timeout_s=iperf_timeout,
            extractor=extractors.parse_iperf3,
        ),
    )


def registry_by_name(registry: tuple[ProbeSpec, ...]) -> dict[str, ProbeSpec]:
    return {spec.name: spec for spec in registry}

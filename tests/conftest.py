"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from unittest.mock import patch

import pytest

from server_audit.assembler import SnapshotAssembler
from server_audit.config import AppConfig, load_config
from server_audit.outcome import BinaryMissing, ExecutionFailed, Success
from server_audit.registry import ProbeSpec

MEMINFO = """MemTotal:       65823488 kB
MemFree:         1234567 kB
MemAvailable:   43211264 kB
Buffers:          345678 kB
"""

CPUINFO = """processor\t: 0
vendor_id\t: GenuineIntel
cpu family\t: 6
model\t\t: 85
model name\t: Intel(R) Xeon(R) Gold 6230 CPU @ 2.10GHz
stepping\t: 7

processor\t: 1
model name\t: Intel(R) Xeon(R) Gold 6230 CPU @ 2.10GHz
"""

OS_RELEASE = """NAME="Ubuntu"
VERSION="22.04.4 LTS (Jammy Jellyfish)"
PRETTY_NAME="Ubuntu 22.04.4 LTS"
ID=ubuntu
"""

SMARTCTL_ATA = """smartctl 7.2 2020-12-30 r5155 [x86_64-linux-5.15.0] (local build)
=== START OF INFORMATION SECTION ===
Device Model:     Samsung SSD 860 EVO 500GB

=== START OF READ SMART DATA SECTION ===
SMART overall-health self-assessment test result: PASSED

SMART Attributes Data Structure revision number: 1
ID# ATTRIBUTE_NAME          FLAG     VALUE WORST THRESH TYPE      UPDATED  WHEN_FAILED RAW_VALUE
  5 Reallocated_Sector_Ct   0x0033   100   100   010    Pre-fail  Always       -       0
  9 Power_On_Hours          0x0032   095   095   000    Old_age   Always       -       21034
194 Temperature_Celsius     0x0022   064   052   000    Old_age   Always       -       36 (Min/Max 20/48)
197 Current_Pending_Sector  0x0032   100   100   000    Old_age   Always       -       2
"""

SMARTCTL_NVME = """smartctl 7.2 2020-12-30 r5155 [x86_64-linux-5.15.0] (local build)
=== START OF SMART DATA SECTION ===
SMART overall-health self-assessment test result: PASSED

SMART/Health Information (NVMe Log 0x02)
Critical Warning:                   0x00
Temperature:                        41 Celsius
Available Spare:                    100%
"""

NVIDIA_ROWS = """0, Tesla T4, 525.105.17, 16384, 512, 5, 42
1, Tesla T4, 525.105.17, 16384, , [N/A], 40
"""

LSPCI = """00:00.0 Host bridge: Intel Corporation 440FX - 82441FX PMC [Natoma] (rev 02)
00:02.0 VGA compatible controller: Cirrus Logic GD 5446
00:03.0 Ethernet controller: Red Hat, Inc. Virtio network device
"""

LSPCI_NO_GPU = """00:00.0 Host bridge: Intel Corporation 440FX - 82441FX PMC [Natoma] (rev 02)
00:03.0 Ethernet controller: Red Hat, Inc. Virtio network device
"""

IP_BRIEF = """lo               UNKNOWN        127.0.0.1/8 ::1/128
eth0             UP             10.0.0.12/24 fe80::5054:ff:fe12:3456/64
docker0          DOWN
"""

IP_ROUTE = """default via 10.0.0.1 dev eth0 proto dhcp src 10.0.0.12 metric 100
10.0.0.0/24 dev eth0 proto kernel scope link src 10.0.0.12
"""

SS_LISTEN = """Netid State  Recv-Q Send-Q Local Address:Port Peer Address:Port Process
tcp   LISTEN 0      128          0.0.0.0:22        0.0.0.0:*     users:(("sshd",pid=812,fd=3))
"""

PS_OUTPUT = """    PID    PPID %MEM %CPU COMMAND
   1234       1  2.5 35.0 /usr/bin/python3 -m http.server 8000
      1       0  0.1  0.3 /sbin/init splash
    812       1  0.0  0.0 sshd: /usr/sbin/sshd -D [listener] 0 of 10-100 startups
"""

MDADM_SCAN = """ARRAY /dev/md0 metadata=1.2 name=host:0 UUID=3aaa0122:29827cfa:5331ad66:ca767371
ARRAY /dev/md1 metadata=1.2 name=host:1 UUID=4bbb0122:29827cfa:5331ad66:ca767372
"""

IOSTAT = """Linux 5.15.0-91-generic (host) \t01/02/2024 \t_x86_64_\t(8 CPU)

avg-cpu:  %user   %nice %system %iowait  %steal   %idle
           2.31    0.00    0.85    0.12    0.00   96.72
"""

DISKSTATS = """   8       0 sda 4153 1021 310428 2064 8213 4108 452736 9952 0 7720 12016 0 0 0 0
   8       1 sda1 4000 1000 300000 2000 8000 4000 450000 9900 0 7700 11900 0 0 0 0
"""

FIO_OUTPUT = """randread: (g=0): rw=randread, bs=(R) 1024KiB-1024KiB, ioengine=libaio, iodepth=1
fio-3.28
randread: (groupid=0, jobs=2): err= 0: pid=4242: Tue Jan  2 10:00:00 2024
  read: IOPS=2534, BW=2534MiB/s (2657MB/s)(19.8GiB/8001msec)
randwrite: (groupid=1, jobs=2): err= 0: pid=4250: Tue Jan  2 10:00:08 2024
  write: IOPS=1.2k, BW=1210MiB/s (1269MB/s)(9680MiB/8001msec); 0 zone resets
"""

IPERF_OUTPUT = """Connecting to host 10.0.0.5, port 5201
[  5] local 10.0.0.12 port 40000 connected to 10.0.0.5 port 5201
[ ID] Interval           Transfer     Bitrate         Retr  Cwnd
[  5]   0.00-1.00   sec   112 MBytes   941 Mbits/sec    0    380 KBytes
- - - - - - - - - - - - - - - - - - - - - - - - -
[ ID] Interval           Transfer     Bitrate         Retr
[  5]   0.00-10.00  sec  1.09 GBytes   938 Mbits/sec   12             sender
[  5]   0.00-10.04  sec  1.09 GBytes   933 Mbits/sec                  receiver

iperf Done.
"""

STANDARD_OUTCOMES = {
    "hostname": Success("web01.example.com\n"),
    "kernel": Success("Linux 5.15.0-91-generic x86_64 GNU/Linux\n"),
    "os_release": Success(OS_RELEASE),
    "uptime": Success("354221.37 1402311.22\n"),
    "loadavg": Success("0.52 0.41 0.30 1/412 98765\n"),
    "cpuinfo": Success(CPUINFO),
    "arch": Success("x86_64\n"),
    "nproc": Success("8\n"),
    "meminfo": Success(MEMINFO),
    "iostat": Success(IOSTAT),
    "ip_addr": Success(IP_BRIEF),
    "ip_route": Success(IP_ROUTE),
    "sockets": Success(SS_LISTEN),
    "processes": Success(PS_OUTPUT),
    "gpu_bus": Success(LSPCI_NO_GPU),
}


class FakeRunner:
    """Stands in for ProbeRunner, answering from a name -> outcome mapping.

    Probes without an entry behave as if their binary were not installed.
    """

    def __init__(self, outcomes):
        self.outcomes = dict(outcomes)
        self.calls: list[ProbeSpec] = []

    def run(self, spec: ProbeSpec):
        self.calls.append(spec)
        if spec.name in self.outcomes:
            return self.outcomes[spec.name]
        if spec.source_path is not None:
            return ExecutionFailed(detail=f"cannot read {spec.source_path}")
        return BinaryMissing(binary=spec.required_binaries[0])

    @property
    def names(self) -> list[str]:
        return [spec.name for spec in self.calls]


def assemble(config, runner, disks=(), workspace=None):
    """Assemble a report with fixed disks and no optional tools on PATH."""
    assembler = SnapshotAssembler(config, runner, workspace)
    with patch("server_audit.assembler.discover_disks", return_value=disks), patch(
        "server_audit.assembler.shutil.which", return_value=None
    ):
        return assembler.assemble()


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as an end-to-end pipeline test"
    )


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with every default."""
    return load_config()


@pytest.fixture
def standard_runner():
    """Runner for a host with the base utilities but no optional tools."""
    return FakeRunner(STANDARD_OUTCOMES)

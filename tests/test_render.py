"""Tests for the text and structured-document renderers."""
from __future__ import annotations

from dataclasses import replace
import json

import pytest

from server_audit.config import AuditOptions
from server_audit.outcome import ExecutionFailed, Success
from server_audit.render import SEPARATOR, encode_document, render_document, render_text
from server_audit.schema import validate_document

from conftest import (
    FIO_OUTPUT,
    IPERF_OUTPUT,
    LSPCI,
    MDADM_SCAN,
    NVIDIA_ROWS,
    SMARTCTL_ATA,
    SMARTCTL_NVME,
    STANDARD_OUTCOMES,
    FakeRunner,
    assemble,
)

TOP_LEVEL_KEYS = [
    "schema",
    "meta",
    "host",
    "cpu",
    "memory",
    "disks",
    "smart",
    "raid",
    "iostats",
    "network",
    "processes",
    "gpu",
    "fio",
    "iperf3",
]


def key_structure(value):
    """Nested key layout of a document, ignoring leaf values."""
    if isinstance(value, dict):
        return {key: key_structure(item) for key, item in value.items()}
    if isinstance(value, list):
        return [key_structure(item) for item in value]
    return None


@pytest.fixture
def standard_report(app_config):
    return assemble(app_config, FakeRunner(STANDARD_OUTCOMES))


@pytest.fixture
def full_report(app_config, tmp_path):
    config = replace(
        app_config, options=AuditOptions(run_fio=True, iperf_server="10.0.0.5")
    )
    outcomes = dict(
        STANDARD_OUTCOMES,
        raid=Success(MDADM_SCAN),
        gpu_vendor=Success(NVIDIA_ROWS),
        fio=Success(FIO_OUTPUT),
        iperf3=Success(IPERF_OUTPUT),
        **{
            "smart:/dev/sda": Success(SMARTCTL_ATA),
            "smart:/dev/nvme0n1": Success(SMARTCTL_NVME),
        },
    )
    return assemble(
        config,
        FakeRunner(outcomes),
        disks=("/dev/sda", "/dev/nvme0n1"),
        workspace=tmp_path,
    )


@pytest.fixture
def empty_report(app_config):
    return assemble(app_config, FakeRunner({}), disks=("/dev/sda",))


class TestTextRenderer:
    """Tests for the human-readable report."""

    def test_section_order(self, full_report):
        text = render_text(full_report)
        headings = [
            "Server Audit Summary",
            "CPU: ",
            "Disks detected:",
            "RAID Present:",
            "I/O stats",
            "Network Interfaces",
            "Top processes snapshot:",
            "GPU Info",
            "FIO Results:",
            "iperf3 Results",
            "Temporary files were stored in RAM",
        ]
        positions = [text.index(heading) for heading in headings]
        assert positions == sorted(positions)

    def test_separators(self, standard_report):
        lines = render_text(standard_report).splitlines()
        assert lines[0] == SEPARATOR
        assert len(SEPARATOR) == 72
        assert lines.count(SEPARATOR) == 11

    def test_unavailable_sections_are_explicit(self, empty_report):
        text = render_text(empty_report)
        for line in (
            "CPU: not available",
            "Memory: not available",
            "SMART: not available",
            "RAID: not available",
            "I/O stats: not available",
            "Network: not available",
            "Top processes: not available",
            "GPU: not available",
            "FIO: not run (skipped)",
            "iperf3: not run (skipped)",
        ):
            assert line in text

    def test_smart_missing_fields_render_na(self, full_report):
        text = render_text(full_report)
        assert (
            "/dev/sda SMART Health: PASSED, Reallocated: 0, Pending: 2, Temp (C): 36" in text
        )
        assert (
            "/dev/nvme0n1 SMART Health: PASSED, Reallocated: N/A, Pending: N/A, Temp (C): 41"
            in text
        )

    def test_values(self, full_report):
        text = render_text(full_report)
        assert "Host: web01.example.com" in text
        assert "Load avg: 0.52 0.41 0.30" in text
        assert f"Memory: total_bytes={65823488 * 1024}, available_bytes={43211264 * 1024}" in text
        assert "RAID Present: true" in text
        assert "[0] Tesla T4 (driver 525.105.17): mem 512/16384 MB, util 5%, temp 42 C" in text
        assert "randread read: IOPS=2534, BW=2534MiB/s" in text
        assert "sender 938 Mbits/sec, receiver 933 Mbits/sec" in text

    def test_gpu_fallback_lines(self, app_config):
        report = assemble(app_config, FakeRunner(dict(STANDARD_OUTCOMES, gpu_bus=Success(LSPCI))))
        text = render_text(report)
        assert "GPU Info (lspci):" in text
        assert "  00:02.0 VGA compatible controller: Cirrus Logic GD 5446" in text

    def test_no_gpu_found(self, standard_report):
        assert "GPU: none detected (lspci)" in render_text(standard_report)

    def test_failed_benchmark(self, app_config, tmp_path):
        config = replace(app_config, options=AuditOptions(run_fio=True))
        runner = FakeRunner(dict(STANDARD_OUTCOMES, fio=ExecutionFailed("timed out after 152s")))
        report = assemble(config, runner, workspace=tmp_path)
        text = render_text(report)
        assert "FIO: not available (failed)" in text
        assert "timed out after 152s" not in text
        assert render_document(report)["fio"]["raw"] == "timed out after 152s"

    def test_failed_iperf_body_left_out(self, app_config):
        config = replace(app_config, options=AuditOptions(iperf_server="10.0.0.5"))
        outcomes = dict(
            STANDARD_OUTCOMES,
            iperf3=Success("iperf3: error - unable to connect to server\n", 1),
        )
        text = render_text(assemble(config, FakeRunner(outcomes)))
        assert "iperf3 (10.0.0.5): not available (failed)" in text
        assert "unable to connect" not in text


class TestDocumentRenderer:
    """Tests for the structured document."""

    def test_top_level_keys(self, standard_report):
        assert list(render_document(standard_report)) == TOP_LEVEL_KEYS

    def test_all_sections_present_when_unavailable(self, empty_report):
        document = render_document(empty_report)

        assert list(document) == TOP_LEVEL_KEYS
        for section in ("host", "cpu", "memory", "smart", "raid", "iostats", "network", "processes", "gpu"):
            assert document[section]["available"] is False
        assert document["fio"] is None
        assert document["iperf3"] is None

    @pytest.mark.parametrize("name", ["standard_report", "full_report", "empty_report"])
    def test_schema_valid(self, name, request):
        document = render_document(request.getfixturevalue(name))
        assert validate_document(document) == []

    def test_schema_rejects_missing_section(self, standard_report):
        document = render_document(standard_report)
        del document["gpu"]
        errors = validate_document(document)
        assert errors
        assert "gpu" in errors[0]

    def test_smart_missing_fields_are_null(self, full_report):
        smart = render_document(full_report)["smart"]
        assert list(smart["devices"]) == ["/dev/nvme0n1", "/dev/sda"]
        assert smart["devices"]["/dev/nvme0n1"] == {
            "health": "PASSED",
            "reallocated_sectors": None,
            "pending_sectors": None,
            "temperature_c": "41",
        }

    def test_gpu_entries(self, full_report):
        entry = render_document(full_report)["gpu"]["entries"][0]
        assert entry["index"] == 0
        assert entry["model"] == "Tesla T4"
        assert entry["memory_total_mb"] == 16384
        assert entry["utilization_pct"] == 5
        assert entry["temperature_c"] == 42

    def test_workspace_not_in_document(self, full_report, tmp_path):
        assert str(tmp_path) in render_text(full_report)
        assert str(tmp_path) not in encode_document(full_report)

    def test_stable_across_runs(self, app_config):
        first = render_document(assemble(app_config, FakeRunner(STANDARD_OUTCOMES)))
        second = render_document(assemble(app_config, FakeRunner(STANDARD_OUTCOMES)))

        assert key_structure(first) == key_structure(second)
        first["meta"].pop("generated_at")
        second["meta"].pop("generated_at")
        assert json.dumps(first) == json.dumps(second)

    def test_encode_round_trips_through_json(self, full_report):
        assert json.loads(encode_document(full_report)) == render_document(full_report)
        assert "\n" not in encode_document(full_report, pretty=False)


@pytest.mark.integration
def test_host_without_optional_tools(app_config):
    """Default options on a host lacking smartctl, mdadm, nvidia-smi, fio and iperf3."""
    runner = FakeRunner(STANDARD_OUTCOMES)
    report = assemble(app_config, runner, disks=("/dev/sda", "/dev/sdb"))
    document = json.loads(encode_document(report))

    assert document["smart"]["available"] is False
    assert document["smart"]["devices"] == {}
    assert document["raid"]["present"] is False
    assert document["gpu"]["present"] is False
    assert document["gpu"]["entries"] == []
    assert document["fio"] is None
    assert document["iperf3"] is None
    for section in ("host", "cpu", "memory", "network", "processes"):
        assert document[section]["available"] is True
    assert document["disks"]["devices"] == ["/dev/sda", "/dev/sdb"]
    assert document["meta"]["options"] == {"run_fio": False, "iperf_server": ""}
    assert "fio" not in runner.names
    assert "iperf3" not in runner.names
    assert validate_document(document) == []

from __future__ import annotations

import logging
import os
from pathlib import Path
import shutil
import subprocess

from server_audit.logging_utils import TRACE_LEVEL
from server_audit.outcome import (
    BinaryMissing,
    ExecutionFailed,
    Outcome,
    Success,
)
from server_audit.registry import ProbeSpec


def _decode(output: bytes | str | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class ProbeRunner:
    """Run one probe and report what happened as an :data:`Outcome`.

    A non-zero exit status is not a failure here: tools such as smartctl
    use it to flag degraded hardware, so the output is returned as
    :class:`Success` with the status attached.
    """

    def __init__(self, scratch_dir: str | Path | None = None) -> None:
        self.scratch_dir = Path(scratch_dir) if scratch_dir is not None else None
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self, spec: ProbeSpec) -> Outcome:
        if spec.source_path is not None:
            outcome = self._read_source(spec)
        else:
            missing = self._missing_binary(spec)
            if missing is not None:
                self.logger.debug("Probe %s skipped: %s not found.", spec.name, missing)
                return BinaryMissing(binary=missing)
            outcome = self._execute(spec)
        self._save_raw(spec, outcome)
        return outcome

    def _missing_binary(self, spec: ProbeSpec) -> str | None:
        for binary in spec.required_binaries:
            if shutil.which(binary) is None:
                return binary
        return None

    def _execute(self, spec: ProbeSpec) -> Outcome:
        command = list(spec.command)
        env = dict(os.environ, LC_ALL="C")
        self.logger.debug("Running probe %s: %s", spec.name, " ".join(command))
        try:
            result = subprocess.run(
                command,
                check=False,
                text=True,
                errors="replace",
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=spec.timeout_s,
                env=env,
            )
        except subprocess.TimeoutExpired as exc:
            self.logger.warning(
                "Probe %s timed out after %ss.", spec.name, spec.timeout_s
            )
            return ExecutionFailed(
                detail=f"timed out after {spec.timeout_s}s", raw=_decode(exc.output)
            )
        except OSError as exc:
            self.logger.warning("Probe %s could not start: %s", spec.name, exc)
            return ExecutionFailed(detail=str(exc))
        if result.returncode != 0:
            self.logger.debug(
                "Command exited with %s: %s", result.returncode, " ".join(command)
            )
        output = result.stdout or ""
        if output:
            self.logger.log(TRACE_LEVEL, "stdout: %s", output.strip())
        return Success(raw=output, exit_status=result.returncode)

    def _read_source(self, spec: ProbeSpec) -> Outcome:
        try:
            content = Path(spec.source_path).read_text(errors="replace")
        except OSError as exc:
            self.logger.warning("Probe %s could not read %s: %s", spec.name, spec.source_path, exc)
            return ExecutionFailed(detail=str(exc))
        self.logger.log(TRACE_LEVEL, "%s: %s", spec.source_path, content.strip())
        return Success(raw=content)

    def _save_raw(self, spec: ProbeSpec, outcome: Outcome) -> None:
        if self.scratch_dir is None:
            return
        raw = getattr(outcome, "raw", "")
        if not raw:
            return
        try:
            (self.scratch_dir / f"{spec.key}.txt").write_text(raw)
        except OSError:
            self.logger.debug("Could not save raw output for %s.", spec.name)

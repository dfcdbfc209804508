"""Exiftool wrapper for image metadata extraction."""

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ExiftoolNotFoundError(Exception):
    """Raised when exiftool is not installed."""


@dataclass
class ExiftoolResult:
    """Result from exiftool extraction."""

    source_file: str
    metadata: dict
    error: str | None = None


class ExiftoolRunner:
    """Runs exiftool and returns its group-prefixed JSON output.

    Values are numeric (``-n``) so GPS coordinates arrive as signed decimals
    when the Composite group is present.
    """

    EXIFTOOL_ARGS = ["-json", "-struct", "-G0", "-n", "-c", "%.6f"]

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self.executable = shutil.which("exiftool")
        if not self.executable:
            raise ExiftoolNotFoundError(
                "exiftool is required for image metadata but was not found.\n"
                "Please install exiftool: https://exiftool.org/install.html"
            )

    def extract_batch(self, file_paths: list[str]) -> list[ExiftoolResult]:
        """Extract metadata from multiple files in a single exiftool call."""
        if not file_paths:
            return []

        cmd = [self.executable, *self.EXIFTOOL_ARGS, "--", *file_paths]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return [ExiftoolResult(fp, {}, "exiftool timed out") for fp in file_paths]
        except OSError as e:
            return [ExiftoolResult(fp, {}, str(e)) for fp in file_paths]

        # Exit status 1 means at least one file had no readable metadata
        if result.returncode not in (0, 1):
            return [ExiftoolResult(fp, {}, result.stderr.strip()) for fp in file_paths]

        try:
            data_list = json.loads(result.stdout) if result.stdout.strip() else []
        except json.JSONDecodeError as e:
            return [ExiftoolResult(fp, {}, f"JSON parse error: {e}") for fp in file_paths]

        data_by_source = {d.get("SourceFile", ""): d for d in data_list}

        results = []
        for fp in file_paths:
            if fp in data_by_source:
                results.append(ExiftoolResult(fp, data_by_source[fp]))
            else:
                logger.debug("exiftool returned nothing for %s", fp)
                results.append(ExiftoolResult(fp, {}, "No output from exiftool"))

        return results

    def extract_single(self, file_path: str) -> ExiftoolResult:
        """Extract metadata from a single file."""
        results = self.extract_batch([file_path])
        return results[0] if results else ExiftoolResult(file_path, {}, "No result")

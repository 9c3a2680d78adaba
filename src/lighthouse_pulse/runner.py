"""Lighthouse audit runner.

Launches a headless Chrome for each audit, drives it with the Lighthouse CLI
and extracts category scores and Core Web Vitals from the JSON report. Chrome
is always torn down, whether the audit succeeds or fails.
"""

from __future__ import annotations

import json
import logging
import shutil
import socket
import subprocess
import tempfile
import time
from collections.abc import Sequence
from typing import Any, Protocol

import requests

from lighthouse_pulse.config import PulseConfig
from lighthouse_pulse.exceptions import AuditorError, AuditorRuntimeError, AuditorUnavailableError
from lighthouse_pulse.models import (
    ALL_CATEGORIES,
    DEVICES,
    AuditCategory,
    AuditMetrics,
    AuditRun,
    AuditScores,
    Device,
)

logger = logging.getLogger(__name__)

METRIC_AUDIT_IDS: dict[str, str] = {
    "lcp": "largest-contentful-paint",
    "fcp": "first-contentful-paint",
    "tbt": "total-blocking-time",
    "cls": "cumulative-layout-shift",
    "speed_index": "speed-index",
}

CHROME_CANDIDATES = (
    "google-chrome",
    "google-chrome-stable",
    "chromium",
    "chromium-browser",
    "chrome",
)


class Auditor(Protocol):
    """Anything that can audit a URL and return scores, metrics and the raw report."""

    def run(
        self,
        url: str,
        device: Device = "mobile",
        categories: Sequence[AuditCategory] | None = None,
    ) -> AuditRun: ...


def resolve_options(device: str, categories: Sequence[str] | None) -> tuple[Device, list[AuditCategory]]:
    """Validate device and categories, defaulting to all categories."""
    if device not in DEVICES:
        raise ValueError(f"Unsupported device {device!r}, expected one of {', '.join(DEVICES)}")
    if not categories:
        return device, list(ALL_CATEGORIES)  # type: ignore[return-value]
    unknown = [c for c in categories if c not in ALL_CATEGORIES]
    if unknown:
        raise ValueError(f"Unsupported categories: {', '.join(unknown)}")
    # Keep the canonical order and drop duplicates.
    return device, [c for c in ALL_CATEGORIES if c in categories]  # type: ignore[return-value]


def _category_score(categories: dict[str, Any], category_id: str) -> int | None:
    score = (categories.get(category_id) or {}).get("score")
    if score is None:
        return None
    return round(score * 100)


def _numeric_value(audits: dict[str, Any], audit_id: str) -> float | None:
    value = (audits.get(audit_id) or {}).get("numericValue")
    return float(value) if value is not None else None


def parse_lighthouse_result(lhr: dict[str, Any]) -> AuditRun:
    """Extract scores and metrics from a Lighthouse result (LHR).

    Raises:
        AuditorRuntimeError: If Lighthouse recorded a runtimeError for the page.
    """
    runtime_error = lhr.get("runtimeError")
    if runtime_error:
        code = runtime_error.get("code", "UNKNOWN")
        message = runtime_error.get("message", "")
        raise AuditorRuntimeError(
            f"Lighthouse runtime error ({code}): {message}",
            code=code,
            details={"url": lhr.get("requestedUrl")},
        )

    categories = lhr.get("categories") or {}
    audits = lhr.get("audits") or {}
    return AuditRun(
        scores=AuditScores(
            performance=_category_score(categories, "performance"),
            accessibility=_category_score(categories, "accessibility"),
            best_practices=_category_score(categories, "best-practices"),
            seo=_category_score(categories, "seo"),
        ),
        metrics=AuditMetrics(**{name: _numeric_value(audits, aid) for name, aid in METRIC_AUDIT_IDS.items()}),
        raw_payload=lhr,
        final_url=lhr.get("finalDisplayedUrl") or lhr.get("finalUrl"),
        lighthouse_version=lhr.get("lighthouseVersion"),
    )


def find_chrome(configured: str | None = None) -> str:
    """Locate a Chrome or Chromium binary."""
    if configured:
        return configured
    for name in CHROME_CANDIDATES:
        path = shutil.which(name)
        if path:
            return path
    raise AuditorUnavailableError(
        "Chrome could not be launched. Make sure Chrome or Chromium is installed or set CHROME_PATH.",
        code="CHROME_NOT_FOUND",
    )


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class ChromeSession:
    """A headless Chrome process with a remote debugging port.

    Use as a context manager: the process is terminated (killed if it does not
    exit in time) and its throwaway profile removed on every exit path.
    """

    def __init__(self, binary: str, flags: Sequence[str] = (), startup_timeout: float = 30.0) -> None:
        self.binary = binary
        self.flags = list(flags)
        self.startup_timeout = startup_timeout
        self.port: int | None = None
        self._process: subprocess.Popen | None = None
        self._profile_dir: str | None = None

    def __enter__(self) -> ChromeSession:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        self.port = _free_port()
        self._profile_dir = tempfile.mkdtemp(prefix="lighthouse-pulse-chrome-")
        args = [
            self.binary,
            f"--remote-debugging-port={self.port}",
            f"--user-data-dir={self._profile_dir}",
            *self.flags,
            "about:blank",
        ]
        logger.debug("Launching Chrome: %s", " ".join(args))
        try:
            self._process = subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            self.close()
            raise AuditorUnavailableError(
                f"Chrome could not be launched. Make sure Chrome or Chromium is installed.\n{exc}",
                code="CHROME_LAUNCH_FAILED",
            ) from exc
        try:
            self._wait_until_ready()
        except BaseException:
            self.close()
            raise

    def _wait_until_ready(self) -> None:
        """Poll the DevTools endpoint until Chrome accepts connections."""
        endpoint = f"http://127.0.0.1:{self.port}/json/version"
        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            if self._process is not None and self._process.poll() is not None:
                raise AuditorUnavailableError(
                    f"Chrome exited during startup with code {self._process.returncode}",
                    code="CHROME_LAUNCH_FAILED",
                )
            try:
                if requests.get(endpoint, timeout=1).ok:
                    return
            except requests.RequestException:
                pass
            time.sleep(0.1)
        raise AuditorUnavailableError(
            f"Chrome did not open its debugging port within {self.startup_timeout:g}s",
            code="CHROME_LAUNCH_TIMEOUT",
        )

    def close(self) -> None:
        process, self._process = self._process, None
        if process is not None and process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                logger.warning("Chrome did not exit after terminate, killing pid %s", process.pid)
                process.kill()
                process.wait()
        if self._profile_dir is not None:
            shutil.rmtree(self._profile_dir, ignore_errors=True)
            self._profile_dir = None


class LighthouseRunner:
    """Runs audits with the Lighthouse CLI against a freshly launched Chrome."""

    def __init__(
        self,
        lighthouse_path: str = "lighthouse",
        chrome_path: str | None = None,
        chrome_flags: Sequence[str] = ("--headless=new", "--no-sandbox"),
        startup_timeout: float = 30.0,
    ) -> None:
        self.lighthouse_path = lighthouse_path
        self.chrome_path = chrome_path
        self.chrome_flags = list(chrome_flags)
        self.startup_timeout = startup_timeout

    def build_command(self, url: str, port: int, device: Device, categories: Sequence[AuditCategory]) -> list[str]:
        command = [
            self.lighthouse_path,
            url,
            f"--port={port}",
            "--output=json",
            "--output-path=stdout",
            "--quiet",
            f"--only-categories={','.join(categories)}",
        ]
        if device == "desktop":
            command.append("--preset=desktop")
        return command

    def run(
        self,
        url: str,
        device: Device = "mobile",
        categories: Sequence[AuditCategory] | None = None,
    ) -> AuditRun:
        """Audit a URL.

        Raises:
            AuditorUnavailableError: If Chrome or the Lighthouse CLI cannot start.
            AuditorRuntimeError: If Lighthouse reports a runtime error for the page.
            AuditorError: If Lighthouse fails or produces no usable report.
        """
        device, categories = resolve_options(device, categories)
        binary = find_chrome(self.chrome_path)

        with ChromeSession(binary, self.chrome_flags, self.startup_timeout) as chrome:
            command = self.build_command(url, chrome.port, device, categories)
            logger.info("Running Lighthouse for %s (%s, %s)", url, device, ",".join(categories))
            logger.debug("Lighthouse command: %s", " ".join(command))
            try:
                completed = subprocess.run(command, capture_output=True, text=True, check=False)
            except OSError as exc:
                raise AuditorUnavailableError(
                    f"Lighthouse could not be started ({self.lighthouse_path}): {exc}",
                    code="LIGHTHOUSE_NOT_FOUND",
                ) from exc

        lhr = self._load_report(completed.stdout)
        if lhr is None:
            stderr = (completed.stderr or "").strip()[-500:]
            if completed.returncode != 0:
                raise AuditorError(
                    f"Lighthouse exited with code {completed.returncode}: {stderr}",
                    code="LIGHTHOUSE_FAILED",
                    details={"url": url, "returncode": completed.returncode},
                )
            raise AuditorError(f"Lighthouse returned no result for URL: {url}", code="NO_RESULT")
        return parse_lighthouse_result(lhr)

    @staticmethod
    def _load_report(stdout: str) -> dict[str, Any] | None:
        if not stdout or not stdout.strip():
            return None
        try:
            report = json.loads(stdout)
        except json.JSONDecodeError:
            return None
        return report if isinstance(report, dict) else None


def build_auditor(config: PulseConfig) -> Auditor:
    """Create the auditor selected by PULSE_AUDIT_BACKEND."""
    if config.audit_backend == "pagespeed":
        from lighthouse_pulse.pagespeed import PageSpeedClient

        return PageSpeedClient(config)
    return LighthouseRunner(
        lighthouse_path=config.lighthouse_path,
        chrome_path=config.chrome_path,
        chrome_flags=config.chrome_flag_list,
        startup_timeout=config.chrome_startup_timeout,
    )

"""PageSpeed Insights client with retry logic and error mapping.

Runs Lighthouse remotely through the PageSpeed Insights v5 API. The response
embeds a regular Lighthouse result, so scores and metrics are extracted the
same way as for local runs.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import requests

from lighthouse_pulse.config import PulseConfig
from lighthouse_pulse.exceptions import (
    AuditorAPIError,
    AuditorConnectionError,
    AuditorRateLimitError,
)
from lighthouse_pulse.models import AuditCategory, AuditRun, Device
from lighthouse_pulse.runner import parse_lighthouse_result, resolve_options

logger = logging.getLogger(__name__)

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

PSI_CATEGORIES: dict[str, str] = {
    "performance": "PERFORMANCE",
    "accessibility": "ACCESSIBILITY",
    "best-practices": "BEST_PRACTICES",
    "seo": "SEO",
}


class PageSpeedClient:
    """Audits URLs through the PageSpeed Insights API."""

    def __init__(self, config: PulseConfig, endpoint: str = PAGESPEED_ENDPOINT) -> None:
        self.config = config
        self.endpoint = endpoint
        self.api_key = config.pagespeed_api_key
        self.timeout = config.pagespeed_timeout
        self.max_retries = config.pagespeed_max_retries
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def close(self) -> None:
        self.session.close()

    def _request(self, params: list[tuple[str, str]]) -> requests.Response:
        """Execute the API request with retry logic and error mapping.

        The initial attempt plus up to ``max_retries`` retries are made,
        giving a total of ``max_retries + 1`` attempts.
        """
        last_exception: Exception | None = None
        for attempt in range(1, self.max_retries + 2):
            try:
                response = self.session.get(self.endpoint, params=params, timeout=self.timeout)
                self._raise_for_status(response)
                return response
            except AuditorRateLimitError as exc:
                last_exception = exc
                wait = exc.retry_after or (2 ** (attempt - 1))
                logger.warning("Rate limited, retrying in %ds (attempt %d/%d)", wait, attempt, self.max_retries + 1)
                time.sleep(wait)
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_exception = AuditorConnectionError(
                    f"PageSpeed Insights unreachable: {exc}",
                    code="CONNECTION_FAILED",
                    details={"attempt": attempt},
                )
                wait = 2 ** (attempt - 1)
                logger.warning("Connection error, retrying in %ds (attempt %d/%d)", wait, attempt, self.max_retries + 1)
                time.sleep(wait)
        raise last_exception  # type: ignore[misc]

    def _raise_for_status(self, response: requests.Response) -> None:
        """Map HTTP status codes to typed auditor exceptions."""
        if response.ok:
            return
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text[:500]}

        error = body.get("error", {}) if isinstance(body, dict) else {}
        message = error.get("message") or f"HTTP {status}"
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise AuditorRateLimitError(
                "PageSpeed Insights rate limit exceeded",
                retry_after=int(retry_after) if retry_after else None,
                details=body,
            )
        raise AuditorAPIError(
            f"PageSpeed Insights error ({status}): {message}",
            status_code=status,
            code=error.get("status") or str(status),
            details=body,
        )

    def build_params(self, url: str, device: Device, categories: Sequence[AuditCategory]) -> list[tuple[str, str]]:
        params = [("url", url), ("strategy", device.upper())]
        params.extend(("category", PSI_CATEGORIES[c]) for c in categories)
        if self.api_key:
            params.append(("key", self.api_key))
        return params

    def run(
        self,
        url: str,
        device: Device = "mobile",
        categories: Sequence[AuditCategory] | None = None,
    ) -> AuditRun:
        """Audit a URL remotely.

        Raises:
            AuditorConnectionError: If the API stays unreachable after retries.
            AuditorRateLimitError: If the API keeps rate limiting after retries.
            AuditorAPIError: For any other HTTP error or a response without a report.
            AuditorRuntimeError: If Lighthouse reports a runtime error for the page.
        """
        device, categories = resolve_options(device, categories)
        logger.info("Running PageSpeed Insights for %s (%s, %s)", url, device, ",".join(categories))
        response = self._request(self.build_params(url, device, categories))
        try:
            data = response.json()
        except ValueError as exc:
            raise AuditorAPIError("PageSpeed Insights returned malformed JSON", code="MALFORMED_RESPONSE") from exc

        lhr = data.get("lighthouseResult") if isinstance(data, dict) else None
        if not lhr:
            raise AuditorAPIError(
                f"PageSpeed Insights returned no Lighthouse result for URL: {url}",
                code="NO_RESULT",
            )
        return parse_lighthouse_result(lhr)

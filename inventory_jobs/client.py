"""
JobClient -- HTTP boundary to the external job service.

Contract:
    Thin synchronous RPC wrapper.  No business logic: it turns calls into
    HTTP requests and responses into DTOs, and every failure into a
    ``JobServiceError``.

Guarantees:
    - Every request carries the ``X-API-Key`` header and a bounded timeout.
    - Non-2xx responses raise ``JobServiceError`` with the HTTP status and
      the upstream ``message``/``error`` text.
    - Timeouts and transport failures raise ``JobServiceError`` with
      ``status_code=None``; nothing hangs the calling task.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from inventory_config.schema import JobServiceSettings
from inventory_jobs.types import JobDescriptor, JobHandle
from inventory_kernel.exceptions import JobServiceError
from inventory_kernel.logging_config import get_logger

logger = get_logger("jobs.client")

DEFAULT_TIMEOUT_SECONDS = 30.0


def _job_path(job_id: str, suffix: str = "") -> str:
    return f"/jobs/{quote(str(job_id), safe='')}{suffix}"


def _upstream_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    text = response.text.strip()
    return text or response.reason_phrase or f"HTTP {response.status_code}"


class JobClient:
    """Synchronous client for the external job service."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        self._timeout = timeout
        self._client = httpx.Client(
            base_url=base_url,
            headers={"X-API-Key": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: JobServiceSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> JobClient:
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    # -------------------------------------------------------------------------
    # RPCs
    # -------------------------------------------------------------------------

    def get_service_status(self) -> dict[str, Any]:
        return self._request("GET", "/status", "get_service_status")

    def create_job(
        self,
        name: str,
        config_id: str,
        source_path: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> JobHandle:
        body: dict[str, Any] = {
            "name": name,
            "configId": config_id,
            "sourcePath": source_path,
        }
        body.update(options or {})
        data = self._request("POST", "/jobs", "create_job", json=body)

        job_id = (data.get("id") or data.get("jobId")) if isinstance(data, dict) else None
        if not job_id:
            raise JobServiceError(
                "Job service did not return a job id",
                operation="create_job",
                upstream=data,
            )
        logger.info("job_created", extra={"job_id": str(job_id), "job_name": name})
        return JobHandle(job_id=str(job_id), raw=data)

    def start_job(self, job_id: str) -> dict[str, Any]:
        return self._request("POST", _job_path(job_id, "/start"), "start_job")

    def stop_job(self, job_id: str) -> dict[str, Any]:
        return self._request("POST", _job_path(job_id, "/stop"), "stop_job")

    def get_job_status(self, job_id: str) -> JobDescriptor:
        data = self._request("GET", _job_path(job_id), "get_job_status")
        if not isinstance(data, dict):
            raise JobServiceError(
                "Unexpected job status payload", operation="get_job_status", upstream=data,
            )
        metadata = data.get("metadata")
        return JobDescriptor(
            job_id=str(data.get("id") or job_id),
            state=data.get("state") or data.get("status"),
            metadata=metadata if isinstance(metadata, dict) else {},
            raw=data,
        )

    def get_hits(self, job_id: str) -> list[dict[str, Any]]:
        data = self._request("GET", _job_path(job_id, "/hits"), "get_hits")
        if isinstance(data, dict):
            data = data.get("hits", [])
        if not isinstance(data, list):
            raise JobServiceError(
                "Unexpected hits payload", operation="get_hits", upstream=data,
            )
        return data

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> JobClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            logger.warning(
                "job_service_timeout",
                extra={"operation": operation, "timeout_seconds": self._timeout},
            )
            raise JobServiceError(
                f"Timed out after {self._timeout}s", operation=operation,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "job_service_unreachable",
                extra={"operation": operation, "error": str(exc)},
            )
            raise JobServiceError(
                str(exc) or type(exc).__name__, operation=operation,
            ) from exc

        if not response.is_success:
            message = _upstream_message(response)
            logger.warning(
                "job_service_error_response",
                extra={
                    "operation": operation,
                    "status_code": response.status_code,
                    "upstream_message": message,
                },
            )
            raise JobServiceError(
                message, status_code=response.status_code, operation=operation,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise JobServiceError(
                "Job service returned invalid JSON",
                status_code=response.status_code,
                operation=operation,
            ) from exc

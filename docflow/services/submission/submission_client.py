"""Client for the downstream utility submission API."""

from typing import Any, Optional

import httpx

from docflow.core.config import settings
from docflow.schemas.parsing import FetchedFile
from docflow.schemas.submissions import IntegrationResult
from docflow.utils.logging import get_logger
from docflow.utils.retry import RetryConfig, retry_async

LOGGER = get_logger(__name__)

REQUIRED_FIELDS = {
    "electricity": ("phone", "mprn", "mcc_type", "dg_type"),
    "gas": ("phone", "gprn"),
    "meter": ("phone", "url"),
}


class RetryableStatus(Exception):
    """Raised internally for 429 and 5xx answers so they can be retried."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def missing_fields(document_type: str, fields: dict[str, Any]) -> list[str]:
    return [name for name in REQUIRED_FIELDS.get(document_type, ()) if not fields.get(name)]


def _decode_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"raw": response.text}
    return body if isinstance(body, dict) else {"data": body}


class SubmissionClient:
    """Posts one sub-entity as multipart form data to its per-type endpoint.

    Retries 429 and 5xx answers and transport errors with exponential backoff;
    other 4xx answers are final.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        integration = settings.integration
        self.base_url = (base_url or integration.base_url).rstrip("/")
        self.api_key = api_key or integration.api_key
        self.paths = {
            "electricity": integration.electricity_path,
            "gas": integration.gas_path,
            "meter": integration.meter_path,
        }
        self.timeout = integration.timeout
        self.retry_config = retry_config or RetryConfig(
            max_attempts=integration.max_attempts,
            base_delay_seconds=integration.retry_delay,
            retryable_exceptions=(RetryableStatus, httpx.TransportError),
        )
        self.transport = transport

    def endpoint_for(self, document_type: str) -> str:
        return f"{self.base_url}{self.paths[document_type]}"

    async def submit(
        self,
        document_type: str,
        fields: dict[str, Any],
        file: FetchedFile,
    ) -> IntegrationResult:
        """Submit one sub-entity.

        Args:
            document_type: electricity, gas or meter
            fields: phone plus the type-specific identifiers
            file: The source document

        Returns:
            IntegrationResult; failures are reported, never raised
        """
        if document_type not in REQUIRED_FIELDS:
            return IntegrationResult(success=False, error=f"Invalid document type: {document_type}")

        missing = missing_fields(document_type, fields)
        if missing:
            return IntegrationResult(success=False, error=f"Missing required fields: {', '.join(missing)}")

        form = {name: str(fields[name]) for name in REQUIRED_FIELDS[document_type]}
        file_name = file.file_name or "attachment"
        url = self.endpoint_for(document_type)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:

            async def attempt() -> httpx.Response:
                response = await client.post(
                    url,
                    headers=headers,
                    data=form,
                    files={"file": (file_name, file.content, file.content_type or "application/octet-stream")},
                )
                if response.status_code == 429 or response.status_code >= 500:
                    raise RetryableStatus(response)
                return response

            try:
                response = await retry_async(attempt, self.retry_config)
            except RetryableStatus as e:
                response = e.response
            except httpx.HTTPError as e:
                LOGGER.error(
                    f"Submission request failed: {e}",
                    extra={"document_type": document_type, "url": url},
                )
                return IntegrationResult(success=False, http_status=0, error=str(e) or type(e).__name__)

        body = _decode_body(response)
        if response.is_success:
            LOGGER.info(
                "Submission accepted",
                extra={"document_type": document_type, "status_code": response.status_code},
            )
            return IntegrationResult(success=True, http_status=response.status_code, response=body)

        error = body.get("message") or body.get("error") or body.get("raw") or f"HTTP {response.status_code}"
        LOGGER.warning(
            f"Submission rejected: {response.status_code}",
            extra={"document_type": document_type, "error": str(error)[:300]},
        )
        return IntegrationResult(
            success=False,
            http_status=response.status_code,
            response=body,
            error=str(error),
        )

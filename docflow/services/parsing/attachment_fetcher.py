"""Attachment download."""

from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from docflow.core.config import settings
from docflow.core.exceptions import APIClientError, APITimeoutError, FileTooLargeError, ValidationError
from docflow.schemas.parsing import FetchedFile
from docflow.utils.file_detection import resolve_content_type
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)


def file_name_from_url(url: str) -> Optional[str]:
    path = urlparse(url).path
    name = unquote(path.rsplit("/", 1)[-1]) if path else ""
    return name or None


class AttachmentFetcher:
    """Downloads attachments with an early size check on ``Content-Length``."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout or settings.classifier.download_timeout
        self.max_bytes = max_bytes or settings.classifier.max_file_size_bytes
        self.transport = transport

    async def fetch(self, url: str, file_name: Optional[str] = None) -> FetchedFile:
        """Download ``url``.

        Raises:
            FileTooLargeError: If the declared or actual size exceeds the ceiling
            ValidationError: If the server answers with a 4xx
            APIClientError: On 5xx or transport failures
            APITimeoutError: If the download times out
        """
        file_name = file_name or file_name_from_url(url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        message = f"Failed to fetch file: HTTP {response.status_code}"
                        if response.status_code < 500:
                            raise ValidationError(message)
                        raise APIClientError(message, upstream_status=response.status_code)

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_bytes:
                        raise FileTooLargeError(
                            f"File size {int(declared) / (1024 * 1024):.1f}MB exceeds the "
                            f"{self.max_bytes // (1024 * 1024)}MB limit"
                        )

                    content = await response.aread()
                    declared_type = response.headers.get("content-type")
        except httpx.TimeoutException as e:
            raise APITimeoutError(f"Timed out fetching attachment: {url}", original_error=e)
        except httpx.HTTPError as e:
            raise APIClientError(f"Failed to fetch attachment: {e}", original_error=e)

        if len(content) > self.max_bytes:
            raise FileTooLargeError(
                f"File size {len(content) / (1024 * 1024):.1f}MB exceeds the "
                f"{self.max_bytes // (1024 * 1024)}MB limit"
            )

        content_type = resolve_content_type(declared_type, content, file_name)
        LOGGER.info(
            "Fetched attachment",
            extra={"url": url, "content_type": content_type, "size_bytes": len(content)},
        )
        return FetchedFile(url=url, content=content, content_type=content_type, file_name=file_name)

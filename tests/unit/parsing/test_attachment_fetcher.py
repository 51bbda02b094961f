"""Unit tests for attachment download."""

import httpx
import pytest

from docflow.core.exceptions import APIClientError, APITimeoutError, FileTooLargeError, ValidationError
from docflow.services.parsing.attachment_fetcher import AttachmentFetcher, file_name_from_url


def transport_for(handler):
    return httpx.MockTransport(handler)


class TestAttachmentFetcher:
    @pytest.mark.asyncio
    async def test_fetch_infers_type_from_magic_bytes(self, sample_pdf_content):
        def handler(request):
            return httpx.Response(200, content=sample_pdf_content, headers={"content-type": "application/octet-stream"})

        fetcher = AttachmentFetcher(transport=transport_for(handler))
        fetched = await fetcher.fetch("https://files.example.com/uploads/bill%20march")

        assert fetched.content == sample_pdf_content
        assert fetched.content_type == "application/pdf"
        assert fetched.file_name == "bill march"
        assert fetched.size_bytes == len(sample_pdf_content)

    @pytest.mark.asyncio
    async def test_declared_length_over_limit_is_rejected(self):
        def handler(request):
            return httpx.Response(200, content=b"x", headers={"content-length": "5000"})

        fetcher = AttachmentFetcher(max_bytes=100, transport=transport_for(handler))

        with pytest.raises(FileTooLargeError):
            await fetcher.fetch("https://files.example.com/big.png")

    @pytest.mark.asyncio
    async def test_actual_size_over_limit_is_rejected(self):
        def handler(request):
            return httpx.Response(200, content=b"\x00" * 500)

        fetcher = AttachmentFetcher(max_bytes=100, transport=transport_for(handler))

        with pytest.raises(FileTooLargeError):
            await fetcher.fetch("https://files.example.com/big.png")

    @pytest.mark.asyncio
    async def test_client_error_is_validation_error(self):
        fetcher = AttachmentFetcher(transport=transport_for(lambda request: httpx.Response(404)))

        with pytest.raises(ValidationError, match="HTTP 404"):
            await fetcher.fetch("https://files.example.com/missing.png")

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        fetcher = AttachmentFetcher(transport=transport_for(lambda request: httpx.Response(503)))

        with pytest.raises(APIClientError) as exc_info:
            await fetcher.fetch("https://files.example.com/a.png")
        assert exc_info.value.upstream_status == 503

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        fetcher = AttachmentFetcher(transport=transport_for(handler))

        with pytest.raises(APITimeoutError):
            await fetcher.fetch("https://files.example.com/a.png")


def test_file_name_from_url():
    assert file_name_from_url("https://x.example.com/a/b/meter.jpg?sig=1") == "meter.jpg"
    assert file_name_from_url("https://x.example.com/") is None

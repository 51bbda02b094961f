"""Attachment download and parse routing."""

from docflow.services.parsing.attachment_fetcher import AttachmentFetcher
from docflow.services.parsing.parse_router import ParseRouter, ProviderChoice

__all__ = [
    "AttachmentFetcher",
    "ParseRouter",
    "ProviderChoice",
]

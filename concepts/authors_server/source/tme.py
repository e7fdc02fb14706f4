"""
TME term source implementation.

This module reads author terms from the TME authority files API. Each page
requested by the reload loop is fetched as several concurrent sub-requests
and the results are concatenated in request order.

Invariants:
    - A page is complete or the fetch fails, partial pages are never returned
    - Transient failures (transport errors, 5xx) are retried with
      exponential backoff
    - Terms are returned in TME order

How to change safely:
    - Test against a recorded TME response before changing the XML mapping
    - Keep the request shape (startRecord/maximumRecords) aligned with the
      cursor contract in base.py
"""

from __future__ import annotations

import asyncio
import logging
import math
import xml.etree.ElementTree as ElementTree

import httpx

from ..config import TmeConfig
from .base import SourceFetchError, Term

logger = logging.getLogger(__name__)

TERMS_PATH = "/rs/authorityfiles/GL/terms"


def parse_terms(content: bytes) -> list[Term]:
    """Parse a TME taxonomy XML document.

    Args:
        content: XML of the form <Taxonomy><Term>...</Term></Taxonomy>

    Returns:
        Terms in document order

    Raises:
        SourceFetchError: If the document is not valid XML
    """
    try:
        root = ElementTree.fromstring(content)
    except ElementTree.ParseError as e:
        raise SourceFetchError(f"Invalid TME taxonomy XML: {e}") from e

    terms = []
    for element in root.iter("Term"):
        aliases = [
            (variation.findtext("Name") or "").strip()
            for variation in element.iterfind("Variations/Variation")
        ]
        terms.append(
            Term(
                raw_id=(element.findtext("Id") or "").strip(),
                canonical_name=(element.findtext("CanonicalName") or "").strip(),
                aliases=[alias for alias in aliases if alias],
            )
        )
    return terms


class TmeTermSource:
    """Primary source reading terms from TME over HTTP.

    Attributes:
        config: TME configuration
        chunk_size: Records requested by each sub-request of a page

    Example:
        >>> async with httpx.AsyncClient() as client:
        ...     source = TmeTermSource(TmeConfig.from_env(), client)
        ...     terms = await source.fetch_page(0)
    """

    def __init__(self, config: TmeConfig, client: httpx.AsyncClient) -> None:
        """Initialize the TME source.

        Args:
            config: TME configuration
            client: Shared HTTP client (owned by the caller)
        """
        self.config = config
        self.chunk_size = max(1, math.ceil(config.max_records / config.batch_size))
        self._client = client
        self._auth = (
            httpx.BasicAuth(config.username, config.password)
            if config.username or config.password
            else None
        )

    async def fetch_page(self, cursor: int) -> list[Term]:
        """Fetch max_records terms starting at cursor.

        Args:
            cursor: Index of the first record

        Returns:
            Terms of the page, empty once TME is exhausted

        Raises:
            SourceFetchError: If any sub-request fails after retries
        """
        end = cursor + self.config.max_records
        starts = range(cursor, end, self.chunk_size)
        # The last sub-request stops at the page end
        chunks = await asyncio.gather(
            *(self._fetch_chunk(start, min(self.chunk_size, end - start)) for start in starts)
        )

        terms = [term for chunk in chunks for term in chunk]
        logger.info(
            f"Fetched {len(terms)} terms from TME",
            extra={"cursor": cursor, "requests": len(starts)},
        )
        return terms

    async def _fetch_chunk(self, start: int, count: int) -> list[Term]:
        url = self.config.base_url.rstrip("/") + TERMS_PATH
        params = {
            "maximumRecords": str(count),
            "startRecord": str(start),
            "taxonomy": self.config.taxonomy,
        }
        headers = {
            "Accept": "application/xml;charset=utf-8",
            "X-Coco-Auth": self.config.token,
        }

        delay = self.config.retry_delay_ms / 1000.0
        for attempt in range(self.config.max_retries + 1):
            try:
                response = await self._client.get(
                    url,
                    params=params,
                    headers=headers,
                    auth=self._auth,
                    timeout=self.config.request_timeout_s,
                )
            except httpx.TransportError as e:
                error = f"TME request failed: {e}"
            else:
                if response.status_code == 200:
                    return parse_terms(response.content)
                error = f"TME returned status {response.status_code}"
                if response.status_code < 500:
                    raise SourceFetchError(error, cursor=start)

            if attempt < self.config.max_retries:
                logger.warning(
                    f"{error}, retrying",
                    extra={"start_record": start, "attempt": attempt + 1},
                )
                await asyncio.sleep(delay)
                delay *= 2

        raise SourceFetchError(
            f"{error} after {self.config.max_retries} retries", cursor=start
        )

    async def close(self) -> None:
        """Close (the HTTP client is owned by the caller)."""
        logger.debug("TmeTermSource closed")

"""
Client for the item lookup service (the `enrich-items` edge function).

Request:  POST {"items": [{"name", "brand"?, "catalog_number"?}, ...]}
Response: {"results": [...]} with one entry per requested item, in order.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import httpx
import structlog

from config import settings
from exceptions import LookupServiceError
from models.bulk_import import ImageCandidate, ImageSearchStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LookupQuery:
    """One item sent to the lookup service."""
    name: str
    brand: Optional[str] = None
    catalog_number: Optional[str] = None

    @property
    def cache_key(self) -> tuple[str, str, str]:
        return (
            self.name.strip().lower(),
            (self.brand or "").strip().lower(),
            (self.catalog_number or "").strip().lower(),
        )

    def to_payload(self) -> dict:
        payload = {"name": self.name}
        if self.brand:
            payload["brand"] = self.brand
        if self.catalog_number:
            payload["catalog_number"] = self.catalog_number
        return payload


@dataclass
class LookupResult:
    """Supplemental data the service returned for one item."""
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    images: list[ImageCandidate] = field(default_factory=list)
    item_type: Optional[str] = None
    safety_level: Optional[str] = None
    suggested_quantity: Optional[int] = None
    image_search_status: Optional[ImageSearchStatus] = None
    source: str = "online"

    @classmethod
    def from_payload(cls, data: dict) -> "LookupResult":
        """Build from one entry of the service's `results` array."""
        source = data.get("source") or "online"

        images: list[ImageCandidate] = []
        for raw in data.get("image_urls") or []:
            if isinstance(raw, str):
                if raw:
                    images.append(ImageCandidate(url=raw, source=source))
            elif isinstance(raw, dict) and raw.get("url"):
                images.append(ImageCandidate(
                    url=raw["url"],
                    source=raw.get("source") or source,
                    width=raw.get("width"),
                    height=raw.get("height"),
                ))

        status = None
        raw_status = data.get("image_search_status")
        if raw_status:
            try:
                status = ImageSearchStatus(raw_status)
            except ValueError:
                logger.debug("unknown_image_search_status", value=raw_status)

        return cls(
            name=data.get("name"),
            description=data.get("description") or None,
            image_url=data.get("image_url") or None,
            images=images,
            item_type=data.get("item_type") or None,
            safety_level=data.get("safety_level") or None,
            suggested_quantity=_as_int(data.get("suggested_quantity")),
            image_search_status=status,
            source=source,
        )


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class LookupClient:
    """
    Async HTTP client for the lookup edge function.

    Raises LookupServiceError for any transport or HTTP failure; callers
    decide how to degrade.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.lookup_function_url
        self.api_key = api_key or settings.supabase_key
        self.timeout = timeout or settings.lookup_timeout_seconds
        self._transport = transport

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": "application/json",
        }

    async def lookup(self, queries: list[LookupQuery]) -> list[Optional[LookupResult]]:
        """
        Look up a batch of items.

        Returns:
            One entry per query, in order; None where the service returned
            nothing for that position
        """
        if not queries:
            return []

        logger.debug("lookup_request", url=self.url, items=len(queries))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    json={"items": [q.to_payload() for q in queries]},
                    headers=self.headers,
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise LookupServiceError(
                f"Lookup service returned {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise LookupServiceError(
                f"Lookup service unreachable: {type(e).__name__}",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise LookupServiceError("Lookup service returned invalid JSON") from e

        raw_results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(raw_results, list):
            raise LookupServiceError("Lookup response has no results list")

        results: list[Optional[LookupResult]] = []
        for i in range(len(queries)):
            raw = raw_results[i] if i < len(raw_results) else None
            results.append(LookupResult.from_payload(raw) if isinstance(raw, dict) else None)

        logger.info(
            "lookup_complete",
            items=len(queries),
            descriptions=sum(1 for r in results if r and r.description),
            images=sum(1 for r in results if r and (r.images or r.image_url)),
        )

        return results


# Singleton instance for convenience
_lookup_client: Optional[LookupClient] = None


def get_lookup_client() -> LookupClient:
    """Get or create LookupClient instance."""
    global _lookup_client
    if _lookup_client is None:
        _lookup_client = LookupClient()
    return _lookup_client

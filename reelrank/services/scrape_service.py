"""
Tackle product page normalizer client.

Retailer page scraping runs in a separate service that returns a partial
product record for a URL. This module calls it and turns the result into
a tackle box item. A failed scrape yields an empty record so the item can
still be created from the URL alone.
"""

import json
import logging
import os
import re
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database.models import TackleItem
from reelrank.utils.constants import SCRAPE_TIMEOUT_SECONDS
from reelrank.utils.datetime_utils import isoformat_or_none
from reelrank.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

SCRAPE_SERVICE_URL = os.getenv("SCRAPE_SERVICE_URL", "http://localhost:8001/scrape-tackle")

_PRICE_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")


class ScrapedTackleData(BaseModel):
    """Partial product record returned by the normalizer."""

    name: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    image: Optional[str] = None
    specifications: Optional[Dict[str, str]] = None
    source: Optional[str] = None


def parse_price(price: Optional[str]) -> Optional[float]:
    """Parse a display price such as "$1,299.99" into a float."""
    if not price:
        return None
    match = _PRICE_PATTERN.search(price)
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("A valid http(s) product URL is required")
    return url


async def scrape_url(url: str) -> ScrapedTackleData:
    """
    Ask the normalizer for the product data behind a URL.

    Returns:
        ScrapedTackleData; empty when the normalizer fails or times out
    """
    try:
        async with httpx.AsyncClient(timeout=SCRAPE_TIMEOUT_SECONDS) as client:
            resp = await client.post(SCRAPE_SERVICE_URL, json={"url": url})
            resp.raise_for_status()
            body = resp.json()
        return ScrapedTackleData.model_validate(body.get("data") or {})

    except Exception:
        logger.warning("Scrape failed for url: %s", url, exc_info=True)
        return ScrapedTackleData()


def _format_tackle_item(item: TackleItem) -> Dict:
    return {
        "id": item.id,
        "user_id": item.user_id,
        "name": item.name,
        "brand": item.brand,
        "model": item.model,
        "description": item.description,
        "price": item.price,
        "image_url": item.image_url,
        "product_url": item.product_url,
        "specifications": json.loads(item.specifications) if item.specifications else None,
        "created_at": isoformat_or_none(item.created_at),
    }


async def create_tackle_item_from_url(session: AsyncSession, user_id: int, url: str) -> Dict:
    """
    Create a tackle box item from a retailer product URL.

    The item name falls back to the URL host when the page yields none.

    Raises:
        ValidationError: If the URL is not an http(s) URL
    """
    url = _validate_url(url)
    scraped = await scrape_url(url)

    item = TackleItem(
        user_id=user_id,
        name=(scraped.name or "").strip() or urlparse(url).netloc,
        brand=scraped.brand or None,
        model=scraped.model or None,
        description=scraped.description or None,
        price=parse_price(scraped.price),
        image_url=scraped.image or None,
        product_url=url,
        specifications=json.dumps(scraped.specifications) if scraped.specifications else None,
    )
    session.add(item)
    await session.flush()
    await session.refresh(item)

    logger.info(f"User {user_id} added tackle item {item.id} from {url}")
    return _format_tackle_item(item)

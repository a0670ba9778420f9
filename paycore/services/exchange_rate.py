"""INR/USD exchange rate, frozen per pricing session.

The rate is read from the feeds in ``EXCHANGE_RATE_URLS`` and cached for
``EXCHANGE_RATE_CACHE_SECONDS``. When no feed answers, the configured
``INR_USD_RATE`` (or 83) is used and cached briefly so the feeds are tried
again soon.

A ``PricingSession`` captures one rate when the storefront loads and keeps
it until checkout is submitted; the displayed price and the submitted price
always use the same rate.
"""

from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

import httpx

from paycore.core.config import settings
from paycore.core.exceptions import InvalidRateError
from paycore.models.pricing import BillingCycle, Plan, PriceQuote
from paycore.services.price_calculator import PriceCalculator
from paycore.utils.money import Currency

logger = logging.getLogger(__name__)

DEFAULT_RATE = Decimal("83")
FALLBACK_CACHE_SECONDS = 120


@dataclass
class _RateCache:
    rate: Decimal | None = None
    expires_at: float = 0.0

    def get(self) -> Decimal | None:
        if self.rate is not None and time.monotonic() < self.expires_at:
            return self.rate
        return None

    def put(self, rate: Decimal, ttl: float) -> Decimal:
        self.rate = rate
        self.expires_at = time.monotonic() + ttl
        return rate


_cache = _RateCache()


def reset_rate_cache() -> None:
    _cache.rate = None
    _cache.expires_at = 0.0


async def _read_feed(client: httpx.AsyncClient, url: str) -> Decimal | None:
    try:
        resp = await client.get(url, timeout=5)
        resp.raise_for_status()
        rate = Decimal(str(resp.json()["rates"]["INR"]))
        if rate > 0:
            return rate
        logger.warning("Exchange rate feed %s returned non-positive rate %s", url, rate)
    except (httpx.HTTPError, KeyError, TypeError, ValueError, InvalidOperation) as exc:
        logger.warning("Exchange rate feed %s unusable: %s", url, exc)
    return None


def _configured_rate() -> Decimal:
    try:
        rate = Decimal(settings.INR_USD_RATE or DEFAULT_RATE)
        if rate > 0:
            return rate
    except InvalidOperation:
        pass
    logger.warning("Invalid INR_USD_RATE %r, using %s", settings.INR_USD_RATE, DEFAULT_RATE)
    return DEFAULT_RATE


async def get_inr_usd_rate(client: httpx.AsyncClient | None = None) -> Decimal:
    """INR per 1 USD: cached value, first live feed, then the configured fallback."""
    cached = _cache.get()
    if cached is not None:
        return cached

    async with httpx.AsyncClient() if client is None else nullcontext(client) as http:
        for url in settings.EXCHANGE_RATE_URLS:
            rate = await _read_feed(http, url)
            if rate is not None:
                logger.info("Fetched live INR/USD rate %s from %s", rate, url)
                return _cache.put(rate, settings.EXCHANGE_RATE_CACHE_SECONDS)

    fallback = _configured_rate()
    logger.warning("Using fallback INR/USD rate: %s", fallback)
    return _cache.put(fallback, min(FALLBACK_CACHE_SECONDS, settings.EXCHANGE_RATE_CACHE_SECONDS))


@dataclass(frozen=True)
class PricingSession:
    """Point-in-time pricing context: one exchange rate for page view through checkout."""

    exchange_rate: Decimal
    calculator: PriceCalculator = field(default_factory=PriceCalculator)

    def __post_init__(self) -> None:
        if self.exchange_rate <= 0:
            raise InvalidRateError("exchange rate", self.exchange_rate)

    @classmethod
    async def open(cls, client: httpx.AsyncClient | None = None) -> PricingSession:
        return cls(exchange_rate=await get_inr_usd_rate(client))

    def quote(self, plan: Plan, cycle: BillingCycle, currency: Currency) -> PriceQuote:
        return self.calculator.quote(plan, cycle, currency, self.exchange_rate)

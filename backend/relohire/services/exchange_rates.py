from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Protocol

import httpx

from relohire.core.config import settings
from relohire.core.errors import ExchangeRateUnavailableError, ValidationFailedError

logger = logging.getLogger(__name__)

# USD price of one unit of each supported currency.
STATIC_RATES: dict[str, Decimal] = {
    "BTC": Decimal("45000"),
    "ETH": Decimal("2500"),
    "USDT": Decimal("1"),
    "USDC": Decimal("1"),
}

COINGECKO_IDS: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "USDC": "usd-coin",
}

SUPPORTED_CURRENCIES = tuple(STATIC_RATES)


class ExchangeRateProvider(Protocol):
    def get_rate(self, currency: str) -> Decimal:
        ...


def normalize_currency(raw: str | None) -> str:
    currency = (raw or "").strip().upper()
    if currency not in STATIC_RATES:
        raise ValidationFailedError(
            f"Unsupported currency {raw!r}",
            details={"supported": list(SUPPORTED_CURRENCIES)},
        )
    return currency


class StaticExchangeRates:
    def __init__(self, rates: dict[str, Decimal] | None = None) -> None:
        self.rates = dict(rates or STATIC_RATES)

    def get_rate(self, currency: str) -> Decimal:
        code = normalize_currency(currency)
        rate = self.rates.get(code)
        if rate is None or rate <= 0:
            raise ExchangeRateUnavailableError(f"No exchange rate for {code}")
        return Decimal(rate)

    def update_rate(self, currency: str, rate: Decimal) -> None:
        self.rates[normalize_currency(currency)] = Decimal(rate)


class CoinGeckoExchangeRates:
    """
    Live USD prices from the CoinGecko simple-price endpoint.
    Network failures and unexpected payloads surface as ExchangeRateUnavailableError.
    """

    def __init__(self, url: str | None = None, *, timeout: float | None = None) -> None:
        self.url = url or settings.COINGECKO_API_URL
        self.timeout = timeout or settings.EXCHANGE_RATE_TIMEOUT_SECONDS

    def get_rate(self, currency: str) -> Decimal:
        code = normalize_currency(currency)
        coin_id = COINGECKO_IDS[code]
        try:
            response = httpx.get(
                self.url,
                params={"ids": coin_id, "vs_currencies": "usd"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Exchange rate lookup failed for %s: %s", code, exc)
            raise ExchangeRateUnavailableError("Exchange rate service unavailable") from exc

        try:
            payload = response.json()
            rate = Decimal(str(payload[coin_id]["usd"]))
        except (ValueError, KeyError, TypeError, InvalidOperation) as exc:
            raise ExchangeRateUnavailableError("Invalid exchange rate response") from exc

        if rate <= 0:
            raise ExchangeRateUnavailableError(f"Non-positive exchange rate for {code}")
        return rate


def get_exchange_rate_provider() -> ExchangeRateProvider:
    provider = (settings.EXCHANGE_RATE_PROVIDER or "static").strip().lower()
    if provider == "coingecko":
        return CoinGeckoExchangeRates()
    if provider != "static":
        logger.warning("Unknown EXCHANGE_RATE_PROVIDER=%r; using static rates", provider)
    return StaticExchangeRates()

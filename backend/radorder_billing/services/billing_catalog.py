from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..platform.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def _load_json_object(raw: str | None, setting_name: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, ValueError):
        logger.warning("%s is not valid JSON; using an empty map", setting_name)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("%s must be a JSON object; using an empty map", setting_name)
        return {}
    return parsed


def _positive_int_map(raw: dict[str, Any], setting_name: str) -> dict[str, int]:
    output: dict[str, int] = {}
    for key, value in raw.items():
        try:
            amount = int(value)
        except (TypeError, ValueError):
            logger.warning("%s[%s] is not an integer; entry skipped", setting_name, key)
            continue
        if amount <= 0:
            logger.warning("%s[%s] must be positive; entry skipped", setting_name, key)
            continue
        output[str(key)] = amount
    return output


@dataclass(frozen=True)
class BillingCatalog:
    """Price/bundle/tier lookup tables, loaded once and injected into handlers.

    Unknown identifiers never fail an event: a provider retry could not make
    them resolve differently. Each lookup falls back to its documented default
    and logs a warning instead.
    """

    bundle_credits: dict[str, int] = field(default_factory=dict)
    price_tiers: dict[str, str] = field(default_factory=dict)
    tier_allotments: dict[str, int] = field(default_factory=dict)
    default_bundle_credits: int = 100
    default_tier: str = "tier_1"
    default_tier_allotment: int = 100

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "BillingCatalog":
        config = config or default_settings
        prices = _load_json_object(config.SUBSCRIPTION_PRICES_JSON, "SUBSCRIPTION_PRICES_JSON")
        return cls(
            bundle_credits=_positive_int_map(
                _load_json_object(config.CREDIT_BUNDLES_JSON, "CREDIT_BUNDLES_JSON"),
                "CREDIT_BUNDLES_JSON",
            ),
            price_tiers={str(k): str(v) for k, v in prices.items() if str(v or "").strip()},
            tier_allotments=_positive_int_map(
                _load_json_object(config.TIER_ALLOTMENTS_JSON, "TIER_ALLOTMENTS_JSON"),
                "TIER_ALLOTMENTS_JSON",
            ),
            default_bundle_credits=int(config.DEFAULT_BUNDLE_CREDITS),
            default_tier=config.DEFAULT_SUBSCRIPTION_TIER,
            default_tier_allotment=int(config.DEFAULT_TIER_ALLOTMENT),
        )

    def credits_for_bundle(self, bundle_id: str | None) -> int:
        credits = self.bundle_credits.get(str(bundle_id or ""))
        if credits is None:
            logger.warning(
                "Unknown credit bundle %r; crediting default of %d credits",
                bundle_id,
                self.default_bundle_credits,
            )
            return self.default_bundle_credits
        return credits

    def tier_for_price(self, price_id: str | None) -> str:
        tier = self.price_tiers.get(str(price_id or ""))
        if tier is None:
            logger.warning(
                "Unknown subscription price %r; using default tier %s",
                price_id,
                self.default_tier,
            )
            return self.default_tier
        return tier

    def allotment_for_tier(self, tier: str | None) -> int:
        allotment = self.tier_allotments.get(str(tier or ""))
        if allotment is None:
            logger.warning(
                "No credit allotment configured for tier %r; using default of %d credits",
                tier,
                self.default_tier_allotment,
            )
            return self.default_tier_allotment
        return allotment

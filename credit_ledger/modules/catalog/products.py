"""
Product Catalog

Purchasable credit packs, loaded from the `products` list in `LedgerSettings`
(``config/products.yaml``). Entries are validated once at construction;
a malformed catalog fails fast with `ConfigurationError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from credit_ledger.core.config.settings import LedgerSettings
from credit_ledger.core.exceptions import ConfigurationError
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.database.models.enums import Platform

logger = get_logger(__name__)

ALL_PLATFORMS: FrozenSet[Platform] = frozenset(Platform)


@dataclass(frozen=True, slots=True)
class CreditProduct:
    product_id: str
    name: str
    credits: int
    bonus_credits: int = 0
    platforms: FrozenSet[Platform] = field(default_factory=lambda: ALL_PLATFORMS)
    is_active: bool = True

    def available_on(self, platform: Platform) -> bool:
        return self.is_active and platform in self.platforms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "credits": self.credits,
            "bonus_credits": self.bonus_credits,
            "platforms": sorted(p.value for p in self.platforms),
            "is_active": self.is_active,
        }

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "CreditProduct":
        product_id = raw.get("product_id")
        if not isinstance(product_id, str) or not product_id:
            raise ConfigurationError("products.product_id", "must be a non-empty string")

        key = f"products.{product_id}"
        credits = raw.get("credits")
        if not isinstance(credits, int) or isinstance(credits, bool) or credits <= 0:
            raise ConfigurationError(f"{key}.credits", "must be a positive integer")

        bonus = raw.get("bonus_credits", 0)
        if not isinstance(bonus, int) or isinstance(bonus, bool) or bonus < 0:
            raise ConfigurationError(f"{key}.bonus_credits", "must be a non-negative integer")

        raw_platforms = raw.get("platforms")
        if raw_platforms is None:
            platforms = ALL_PLATFORMS
        else:
            try:
                platforms = frozenset(Platform(str(p).lower()) for p in raw_platforms)
            except ValueError as exc:
                raise ConfigurationError(f"{key}.platforms", str(exc)) from exc

        return cls(
            product_id=product_id,
            name=str(raw.get("name") or product_id),
            credits=credits,
            bonus_credits=bonus,
            platforms=platforms,
            is_active=bool(raw.get("is_active", True)),
        )


class ProductCatalog:
    def __init__(self, products: Iterable[CreditProduct]) -> None:
        self._products: Dict[str, CreditProduct] = {}
        for product in products:
            if product.product_id in self._products:
                raise ConfigurationError(
                    f"products.{product.product_id}", "duplicate product_id"
                )
            self._products[product.product_id] = product

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> "ProductCatalog":
        catalog = cls(CreditProduct.from_mapping(raw) for raw in settings.products)
        logger.info(
            "Product catalog loaded",
            extra={"product_count": len(catalog), "active": len(catalog.list())},
        )
        return catalog

    def __len__(self) -> int:
        return len(self._products)

    def get(self, product_id: str) -> Optional[CreditProduct]:
        return self._products.get(product_id)

    def list(self, platform: Optional[Platform] = None) -> List[CreditProduct]:
        """Active products, optionally only those sold on `platform`."""
        products = [p for p in self._products.values() if p.is_active]
        if platform is not None:
            products = [p for p in products if platform in p.platforms]
        return sorted(products, key=lambda p: (p.credits, p.product_id))

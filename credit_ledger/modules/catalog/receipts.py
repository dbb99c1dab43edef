"""
Receipt verification.

`ReceiptVerifier` is the seam where a store integration (App Store, Play,
a web payment provider) plugs in. The bundled `StructuralReceiptVerifier`
checks shape only: a non-blank token of sane length without control
characters, and a platform the product is sold on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from credit_ledger.database.models.enums import Platform
from credit_ledger.modules.catalog.products import CreditProduct
from credit_ledger.modules.shared.constants import MAX_TOKEN_LENGTH


@dataclass(frozen=True, slots=True)
class ReceiptVerification:
    valid: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "ReceiptVerification":
        return cls(True)

    @classmethod
    def rejected(cls, reason: str) -> "ReceiptVerification":
        return cls(False, reason)


class ReceiptVerifier(Protocol):
    async def verify(
        self,
        *,
        user_id: str,
        product: CreditProduct,
        platform: Platform,
        purchase_token: str,
        transaction_id: str,
        receipt_data: Optional[str] = None,
    ) -> ReceiptVerification: ...


class StructuralReceiptVerifier:
    MIN_TOKEN_LENGTH = 8

    async def verify(
        self,
        *,
        user_id: str,
        product: CreditProduct,
        platform: Platform,
        purchase_token: str,
        transaction_id: str,
        receipt_data: Optional[str] = None,
    ) -> ReceiptVerification:
        token = (receipt_data or purchase_token).strip()

        if len(token) < self.MIN_TOKEN_LENGTH:
            return ReceiptVerification.rejected("purchase token too short")
        if len(token) > MAX_TOKEN_LENGTH:
            return ReceiptVerification.rejected("purchase token too long")
        if any(ord(ch) < 32 for ch in token):
            return ReceiptVerification.rejected("purchase token contains control characters")
        if not product.available_on(platform):
            return ReceiptVerification.rejected(
                f"product not sold on {platform.value}"
            )
        return ReceiptVerification.ok()

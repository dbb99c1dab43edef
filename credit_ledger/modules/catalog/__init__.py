"""
Catalog Module
==============

Exports:
- CreditProduct, ProductCatalog: purchasable credit packs
- ReceiptVerifier, StructuralReceiptVerifier, ReceiptVerification
"""

from .products import CreditProduct, ProductCatalog
from .receipts import ReceiptVerification, ReceiptVerifier, StructuralReceiptVerifier

__all__ = [
    "CreditProduct",
    "ProductCatalog",
    "ReceiptVerification",
    "ReceiptVerifier",
    "StructuralReceiptVerifier",
]

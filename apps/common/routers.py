"""
Database router for the two storefront datastores.

The ledger (``default``) holds users, products, promotions and orders with
full transactional guarantees. The catalog store (``catalog``) holds the
wishlist, feedback and profile shadow copies and is never joined to the
ledger in a transaction.
"""

from typing import Any

CATALOG_DB_ALIAS = "catalog"
LEDGER_DB_ALIAS = "default"
CATALOG_APP_LABELS = frozenset({"catalog"})


class CatalogRouter:
    """Pin catalog-store apps to their own database alias."""

    def db_for_read(self, model: Any, **hints: Any) -> str | None:
        if model._meta.app_label in CATALOG_APP_LABELS:
            return CATALOG_DB_ALIAS
        return LEDGER_DB_ALIAS

    def db_for_write(self, model: Any, **hints: Any) -> str | None:
        if model._meta.app_label in CATALOG_APP_LABELS:
            return CATALOG_DB_ALIAS
        return LEDGER_DB_ALIAS

    def allow_relation(self, obj1: Any, obj2: Any, **hints: Any) -> bool | None:
        """Relations are allowed only inside one store."""
        in_catalog_1 = obj1._meta.app_label in CATALOG_APP_LABELS
        in_catalog_2 = obj2._meta.app_label in CATALOG_APP_LABELS
        return in_catalog_1 == in_catalog_2

    def allow_migrate(self, db: str, app_label: str, model_name: str | None = None, **hints: Any) -> bool | None:
        if app_label in CATALOG_APP_LABELS:
            return db == CATALOG_DB_ALIAS
        return db == LEDGER_DB_ALIAS

from django.apps import AppConfig


class CatalogConfig(AppConfig):
    """
    📚 Catalog/Feedback store

    Wishlist entries, feedback and customer profile shadows, kept in the
    ``catalog`` database alias and loosely synchronised with the ledger.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.catalog"
    verbose_name = "Catalog Store"

    def ready(self) -> None:
        """Import signals when Django starts"""
        from . import signals  # noqa: F401, PLC0415

"""
Keep the catalog-store profile shadow in step with ledger users.
"""

import logging
from typing import Any

from django.db import DatabaseError
from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.users.models import User

from .models import CustomerProfile

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def sync_customer_profile(sender: type[User], instance: User, created: bool, **kwargs: Any) -> None:
    """Best effort: a catalog outage must not fail a ledger write."""
    if kwargs.get("raw"):
        return
    try:
        CustomerProfile.objects.update_or_create(
            user_id=instance.pk,
            defaults={
                "email": instance.email,
                "first_name": instance.first_name,
                "last_name": instance.last_name,
            },
        )
    except DatabaseError:
        logger.exception(f"⚠️ [Catalog] Profile shadow sync failed for user {instance.pk}")

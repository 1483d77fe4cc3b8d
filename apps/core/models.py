"""
Core base model mixins shared by every app.
"""
import uuid
from django.db import models


class UUIDModel(models.Model):
    """Primary key is a UUID, not an auto-incrementing integer."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class TimestampedModel(models.Model):
    """Automatically tracks creation and last-update timestamps."""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ActiveQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def inactive(self):
        return self.filter(is_active=False)

    def deactivate(self):
        return self.update(is_active=False)


class ActivatableModel(models.Model):
    """
    Catalog rows are deactivated, never deleted, so historical appointments
    and pay runs keep pointing at them.
    """
    is_active = models.BooleanField(default=True, db_index=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        abstract = True

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=['is_active'])


class BaseModel(UUIDModel, TimestampedModel, ActivatableModel):
    """UUID pk + timestamps + activation flag. Use for catalog and staff models."""
    class Meta:
        abstract = True

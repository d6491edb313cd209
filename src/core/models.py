"""Shared model building blocks (soft delete, timestamps)."""

from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """QuerySet that marks rows deleted instead of removing them."""

    def soft_delete(self) -> int:
        return self.update(deleted_at=timezone.now())

    def alive(self):
        return self.filter(deleted_at__isnull=True)


class SoftDeleteManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    """Default manager hiding soft-deleted rows."""

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


class TimestampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class SoftDeleteModel(TimestampedModel):
    """Timestamped model with a ``deleted_at`` marker.

    ``objects`` only returns live rows; ``all_objects`` includes deleted ones.
    """

    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    objects = SoftDeleteManager()
    all_objects = models.Manager.from_queryset(SoftDeleteQuerySet)()

    class Meta:
        abstract = True

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def remove(self, soft: bool = True) -> None:
        """Soft-delete (default) or hard-delete this row."""
        if soft:
            self.deleted_at = timezone.now()
            self.save(update_fields=["deleted_at", "updated_at"])
        else:
            self.delete()


__all__ = ["SoftDeleteManager", "SoftDeleteModel", "SoftDeleteQuerySet", "TimestampedModel"]

from django.conf import settings
from django.db import models


def default_scope_column():
    return settings.CASEDESK_SCOPE_COLUMN


class ManagedTable(models.Model):
    name = models.CharField(max_length=255, unique=True)
    display_name = models.CharField(max_length=255, blank=True)
    scope_column = models.CharField(max_length=255, blank=True, default=default_scope_column)
    voice_input = models.BooleanField(default=False)
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["position", "name"]

    def __str__(self):
        return self.display_name or self.name

    @property
    def label(self):
        return self.display_name or self.name.replace("_", " ").title()

    def descriptor(self, scope_id=None):
        return TableDescriptor(
            name=self.name.lower(),
            display_name=self.label,
            scope_column=self.scope_column or None,
            scope_id=scope_id,
        )


class TableDescriptor:
    """A remote collection plus the owner partition to restrict it to."""

    def __init__(self, name, display_name=None, scope_column=None, scope_id=None):
        self.name = name
        self.display_name = display_name or name
        self.scope_column = scope_column
        self.scope_id = scope_id

    def __repr__(self):
        return f"TableDescriptor({self.name!r}, scope_id={self.scope_id!r})"

    @property
    def scope(self):
        if self.scope_column and self.scope_id not in (None, ""):
            return (self.scope_column, self.scope_id)
        return None

from django.contrib import admin

from .models import ManagedTable


@admin.register(ManagedTable)
class ManagedTableAdmin(admin.ModelAdmin):
    list_display = ("name", "display_name", "scope_column", "voice_input", "position")
    list_editable = ("position",)
    search_fields = ("name", "display_name")

from django.contrib import admin
from solo.admin import SingletonModelAdmin

from . import models


@admin.register(models.SiteSettings)
class SiteSettingsAdmin(SingletonModelAdmin):
    readonly_fields = ["created_at", "updated_at"]


@admin.register(models.EmailLog)
class EmailLogAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["to", "subject", "message_id", "sent_at"]
    search_fields = ["to", "subject", "message_id"]
    readonly_fields = ["to", "subject", "message_id", "sent_at", "body", "html"]
    exclude = ["compressed_body", "compressed_html"]
    date_hierarchy = "sent_at"

import typing as t

from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from . import models


class UserLinkMixin:
    """Mixin to add a link to a user."""

    def user_link(self, obj: t.Any) -> str:
        url = reverse("admin:accounts_ecclesiauser_change", args=[obj.user_id])
        return format_html('<a href="{}">{}</a>', url, obj.user.username)

    user_link.short_description = "User"  # type: ignore[attr-defined]


class TicketTypeInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.TicketType
    extra = 0
    fields = ["name", "price", "quantity_available", "quantity_sold", "max_per_order", "is_active", "display_order"]
    # Only allocation moves the counter.
    readonly_fields = ["quantity_sold"]


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["title", "date", "time", "location", "price", "available_tickets"]
    list_filter = ["date"]
    search_fields = ["title", "slug", "location"]
    prepopulated_fields = {"slug": ("title",)}
    date_hierarchy = "date"
    inlines = [TicketTypeInline]


@admin.register(models.Ticket)
class TicketAdmin(UserLinkMixin, admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["id", "event", "ticket_type", "user_link", "quantity", "status", "check_in_status", "created_at"]
    list_filter = ["status", "check_in_status"]
    search_fields = ["id", "payment_id", "user__email", "user__username", "event__title"]
    list_select_related = ["event", "ticket_type", "user"]
    readonly_fields = [
        "event",
        "ticket_type",
        "user",
        "quantity",
        "payment_id",
        "payment_metadata",
        "checked_in_at",
        "cancelled_at",
        "created_at",
        "updated_at",
    ]


@admin.register(models.EventRegistration)
class EventRegistrationAdmin(UserLinkMixin, admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["event", "user_link", "status", "created_at"]
    list_filter = ["status"]
    search_fields = ["event__title", "user__email", "user__username"]
    list_select_related = ["event", "user"]

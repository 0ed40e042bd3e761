from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from accounts.models import EcclesiaUser


@admin.register(EcclesiaUser)
class EcclesiaUserAdmin(UserAdmin):  # type: ignore[type-arg]
    list_display = ["username", "email", "preferred_name", "is_staff", "date_joined"]
    search_fields = ["username", "email", "preferred_name", "first_name", "last_name"]
    fieldsets = (*(UserAdmin.fieldsets or ()), ("Profile", {"fields": ("preferred_name",)}))

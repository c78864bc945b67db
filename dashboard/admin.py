# dashboard/admin.py
from django.contrib import admin

from .models import ActivityLog, Client, Referral


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "phone", "referral_code", "company", "is_active", "created_at")
    search_fields = ("name", "email", "phone", "referral_code")
    list_filter = ("company", "is_active")

    def get_readonly_fields(self, request, obj=None):
        # Code émis une seule fois
        return ("referral_code",) if obj else ()


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ("id", "company", "referrer_code", "referee_name", "referee_email", "converted", "created_at")
    list_filter = ("company", "converted")
    search_fields = ("referrer_code", "referee_name", "referee_email")
    readonly_fields = ("converted", "converted_at")
    date_hierarchy = "created_at"


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "company", "type", "description")
    list_filter = ("company", "type")
    search_fields = ("description",)
    date_hierarchy = "timestamp"

    def has_change_permission(self, request, obj=None):
        return False

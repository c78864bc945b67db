# sms/admin.py
from django.contrib import admin

from .models import EarlyDeliveryStatus, SmsMessage


@admin.register(SmsMessage)
class SmsMessageAdmin(admin.ModelAdmin):
    list_display = ("id", "company", "client", "direction", "status", "is_read", "timestamp")
    list_filter = ("company", "direction", "status", "is_read")
    search_fields = ("body", "from_number", "to_number", "provider_message_id")
    date_hierarchy = "timestamp"
    readonly_fields = ("provider_message_id", "timestamp")


@admin.register(EarlyDeliveryStatus)
class EarlyDeliveryStatusAdmin(admin.ModelAdmin):
    list_display = ("provider_message_id", "carrier_status", "received_at")
    search_fields = ("provider_message_id",)

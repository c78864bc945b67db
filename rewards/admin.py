# rewards/admin.py
from django.contrib import admin

from .models import RewardRecord


@admin.register(RewardRecord)
class RewardRecordAdmin(admin.ModelAdmin):
    list_display = ("id", "company", "referral", "reward_given", "reward_amount", "marked_at")
    list_filter = ("company", "reward_given")
    search_fields = ("referral__referee_name", "referral__referee_email", "referral__referrer_code")
    date_hierarchy = "marked_at"

    # Décisions via set_reward uniquement
    def has_add_permission(self, request):
        return False

# accounts/admin.py
from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import Company, User


@admin.action(description="Régénérer le jeton du webhook de réservation")
def rotate_webhook_tokens(modeladmin, request, queryset):
    for company in queryset:
        company.rotate_webhook_token()
    messages.success(request, f"{queryset.count()} jeton(s) régénéré(s) : mettez à jour l'outil de réservation.")


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "sms_number", "is_active")
    search_fields = ("name", "slug", "sms_number")
    list_filter = ("is_active",)
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ("webhook_token",)
    actions = [rotate_webhook_tokens]


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = (
        (None, {"fields": ("username", "password")}),
        ("Informations personnelles", {"fields": ("first_name", "last_name", "email")}),
        ("Rôle & Entreprise", {"fields": ("profile", "company")}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")}),
        ("Dates importantes", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("username", "password1", "password2", "profile", "company")}),
    )
    readonly_fields = ("last_login", "date_joined")
    list_display = ("username", "email", "profile", "company", "is_active", "is_staff")
    list_filter = ("profile", "company", "is_active", "is_staff")
    ordering = ("username",)

# accounts/permissions.py
from django.core.exceptions import PermissionDenied


def require_company_staff(user):
    """Admin d'entreprise ou opérateur rattaché à une entreprise active."""
    if not user.is_authenticated:
        raise PermissionDenied()
    company = getattr(user, "company", None)
    if company is None or not company.is_active:
        raise PermissionDenied("Aucune entreprise active rattachée à ce compte.")
    if not (user.is_admin_entreprise() or user.is_operateur() or user.is_superadmin()):
        raise PermissionDenied("Accès réservé au personnel.")
    return company


def company_for(user):
    # Admin/Opérateur : l'entreprise de l'utilisateur
    return require_company_staff(user)

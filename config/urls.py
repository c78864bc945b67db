# config/urls.py
from django.contrib import admin
from django.db import connection
from django.http import JsonResponse
from django.urls import include, path

from dashboard.views import referral_link


def healthz(request):
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1")
    except Exception as e:
        return JsonResponse({"status": "error", "db": str(e)}, status=503)
    return JsonResponse({"status": "ok"}, status=200)


urlpatterns = [
    path("dashboard/", include("dashboard.urls")),
    path("sms/", include("sms.urls")),
    path("r/<str:code>/", referral_link, name="referral_link"),
    path("admin/", admin.site.urls),
    path("healthz", healthz, name="healthz"),
    path("healthz/", healthz, name="healthz-slash"),
]

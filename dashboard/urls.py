# dashboard/urls.py
from django.urls import path

from . import views

app_name = "dashboard"

urlpatterns = [
    path("api/referrals/pending/", views.pending_referrals, name="referrals_pending"),
    path("api/referrals/conversions/", views.referral_conversions, name="referrals_conversions"),
    path("api/referrals/<int:pk>/convert/", views.referral_convert, name="referral_convert"),
    path("api/referrals/<int:pk>/reward/", views.referral_reward, name="referral_reward"),
    path("api/referrals/<int:pk>/reminder/", views.referral_reminder, name="referral_reminder"),
    path("api/badges/", views.badges, name="badges"),
    path("api/activity/", views.activity_feed, name="activity_feed"),
    path("webhooks/booking/<str:token>/", views.booking_webhook, name="booking_webhook"),
]

# sms/urls.py
from django.urls import path

from . import views

app_name = "sms"

urlpatterns = [
    path("conversations/", views.conversations, name="conversations"),
    path("conversations/<int:client_id>/", views.conversation_detail, name="conversation_detail"),
    path("mark-read/", views.mark_read, name="mark_read"),
    path("reply/", views.reply, name="reply"),
    path("messages/<int:pk>/retry/", views.retry, name="retry"),
    path("unread-count/", views.unread_count, name="unread_count"),
    path("webhooks/inbound/", views.inbound_webhook, name="inbound_webhook"),
    path("webhooks/status/", views.status_webhook, name="status_webhook"),
]

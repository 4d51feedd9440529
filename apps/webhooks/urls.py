"""
URL configuration for the webhooks app.
"""

from django.urls import path

from apps.webhooks.views import WebhookReceiveView

app_name = "webhooks"

urlpatterns = [
    path("receive/<uuid:webhook_id>/", WebhookReceiveView.as_view(), name="receive"),
]

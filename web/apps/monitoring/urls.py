from django.urls import path

from .api import health_view, metrics_view

app_name = "monitoring"

urlpatterns = [
    path("health/", health_view, name="health"),
    path("health/metrics/", metrics_view, name="metrics"),
]

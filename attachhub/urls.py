from django.conf import settings
from django.urls import include, path

urlpatterns = []

if getattr(settings, 'ATTACHMENTS_ROUTES_PUBLISH', True):
    urlpatterns.append(
        path(getattr(settings, 'ATTACHMENTS_ROUTE_PREFIX', 'attachments/'), include('attachments.urls')),
    )

from django.urls import path
from . import views

app_name = 'attachments'

urlpatterns = [
    # Dropzone (deferred upload) endpoints
    path('dropzone/', views.dropzone_upload, name='dropzone-upload'),
    path('dropzone/<str:external_id>/', views.dropzone_delete, name='dropzone-delete'),

    # Output endpoint, filename is cosmetic
    path('<str:external_id>/<path:filename>', views.download, name='download'),
]

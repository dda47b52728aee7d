from django.urls import path
from .views import (
    FileUploadView,
    FileMetadataView,
    FileDeleteView,
    DownloadTokenView,
    FileDownloadView,
)

app_name = "vault"

urlpatterns = [
    path("files/upload", FileUploadView.as_view(), name="upload"),
    path("files/metadata", FileMetadataView.as_view(), name="metadata"),
    path("files/delete", FileDeleteView.as_view(), name="delete"),

    path("download/token", DownloadTokenView.as_view(), name="download_token"),
    path("download", FileDownloadView.as_view(), name="download"),
]

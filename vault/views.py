import logging
import posixpath

import jwt
from django.core.exceptions import SuspiciousFileOperation
from django.core.files.storage import default_storage
from django.http import HttpResponseForbidden, HttpResponseNotFound
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import NotFound
from .responses import encrypted_file_response
from .serializers import FilePathSerializer, FileMetadataSerializer, FileUploadSerializer
from .tokens import build_download_url, validate_download_token

_LOG = logging.getLogger(__name__)


# -------------------------------------------
#  FILE UPLOAD
# -------------------------------------------
class FileUploadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = FileUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        upload = serializer.validated_data["file"]
        directory = serializer.validated_data.get("path") or ""
        name = posixpath.join(directory, upload.name) if directory else upload.name

        try:
            name = default_storage.save(name, upload)
        except SuspiciousFileOperation as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        visibility = serializer.validated_data.get("visibility")
        if visibility:
            default_storage.set_visibility(name, visibility)

        _LOG.info("Stored encrypted upload %s (%s bytes)", name, upload.size)
        return Response({"path": name, "size": upload.size}, status=status.HTTP_201_CREATED)


# -------------------------------------------
#  FILE METADATA
# -------------------------------------------
class FileMetadataView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        serializer = FilePathSerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        name = serializer.validated_data["path"]
        try:
            metadata = default_storage.metadata(name)
        except NotFound:
            return Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)

        return Response(FileMetadataSerializer({"path": name, **metadata}).data)


# -------------------------------------------
#  FILE DELETE
# -------------------------------------------
class FileDeleteView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = FilePathSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        name = serializer.validated_data["path"]
        try:
            default_storage.delete(name)
        except NotFound:
            return Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)

        return Response({"detail": "deleted"})


# -------------------------------------------
#  DOWNLOAD TOKEN
# -------------------------------------------
class DownloadTokenView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = FilePathSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        name = serializer.validated_data["path"]
        if not default_storage.file_exists(name):
            return Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)

        return Response({"download_url": build_download_url(name, request)})


# -------------------------------------------
#  DOWNLOAD
# -------------------------------------------
class FileDownloadView(APIView):
    # The signed token is the credential here.
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        token = request.query_params.get("token")
        if not token:
            return HttpResponseForbidden("Missing token")

        try:
            payload = validate_download_token(token)
        except jwt.InvalidTokenError as exc:
            _LOG.warning("Download refused: %s", exc)
            return HttpResponseForbidden("Invalid or expired token")

        as_attachment = request.query_params.get("disposition") == "attachment"
        try:
            return encrypted_file_response(default_storage, payload["path"], as_attachment=as_attachment)
        except NotFound:
            return HttpResponseNotFound("Not found")

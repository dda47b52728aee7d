from rest_framework import serializers


class FileMetadataSerializer(serializers.Serializer):
    path = serializers.CharField()
    size = serializers.IntegerField()
    mime_type = serializers.CharField()
    last_modified = serializers.DateTimeField()
    visibility = serializers.ChoiceField(choices=("public", "private"))


class FileUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    path = serializers.CharField(required=False, allow_blank=True)
    visibility = serializers.ChoiceField(choices=("public", "private"), required=False)


class FilePathSerializer(serializers.Serializer):
    path = serializers.CharField()

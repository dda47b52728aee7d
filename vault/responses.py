import mimetypes
import posixpath

from django.http import StreamingHttpResponse
from django.utils.http import content_disposition_header

DEFAULT_CHUNK_SIZE = 8192


class ChunkedStream:
    """
    Iterates a decrypting stream in fixed-size chunks. The response closes
    it when it is done, whether or not the body was ever consumed.
    """

    def __init__(self, stream, chunk_size=DEFAULT_CHUNK_SIZE):
        self.stream = stream
        self.chunk_size = chunk_size

    def __iter__(self):
        while True:
            chunk = self.stream.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        self.stream.close()


def resolve_content_type(storage, name, filename=None):
    """Guess from the download filename first, then ask the storage."""
    content_type, _ = mimetypes.guess_type(filename or name)
    return content_type or storage.mime_type(name)


def encrypted_file_response(
    storage,
    name,
    filename=None,
    as_attachment=False,
    headers=None,
    chunk_size=DEFAULT_CHUNK_SIZE,
):
    """
    Stream the decrypted contents of ``name`` to the client in
    ``chunk_size`` pieces. The file is opened before the response is
    built, so a missing file raises NotFound here rather than mid-stream.
    Explicit ``headers`` win over the computed ones.
    """
    filename = filename or posixpath.basename(name)
    stream = storage.read_stream(name)
    try:
        content_type = resolve_content_type(storage, name, filename)
    except Exception:
        stream.close()
        raise

    response = StreamingHttpResponse(ChunkedStream(stream, chunk_size), content_type=content_type)
    response.headers["Content-Disposition"] = content_disposition_header(as_attachment, filename)
    for header, value in (headers or {}).items():
        response.headers[header] = value
    return response

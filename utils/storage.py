import codecs
import io
import logging
import mimetypes
import posixpath
import threading
from datetime import datetime, timezone

from django.conf import settings
from django.core.files import File
from django.core.files.storage import Storage
from django.utils.deconstruct import deconstructible

from vault.backends import LocalFilesystemBackend
from vault.ciphers import make_cipher_method
from vault.conf import (
    get_configuration,
    resolve_block_size,
    resolve_link_handling,
    resolve_write_flags,
    validate_configuration,
)
from vault.streams import DecryptingStream, EncodedTextSource, EncryptingStream
from vault.tokens import build_download_url

_LOG = logging.getLogger(__name__)

# Appended to every encrypted file on disk. Directories never carry it.
FILENAME_POSTFIX = ".enc"


def attach_encryption_marker(path: str) -> str:
    if path.endswith(FILENAME_POSTFIX):
        return path
    return path + FILENAME_POSTFIX


def detach_encryption_marker(path: str) -> str:
    if path.endswith(FILENAME_POSTFIX):
        return path[: -len(FILENAME_POSTFIX)]
    return path


@deconstructible(path="utils.storage.EncryptedFileStorage")
class EncryptedFileStorage(Storage):
    """
    Stores file contents encrypted on the local disk and decrypts them
    transparently on read.

    Every file ``name`` lives on disk as ``name + ".enc"``; directories keep
    their names. The actual disk work is delegated to a
    LocalFilesystemBackend, encryption goes through the configured cipher
    method one block at a time so files of any size are processed in
    constant memory.

    Sizes and timestamps reported by size(), metadata() and the
    get_*_time() methods are those of the encrypted file on disk, which is
    larger than the plaintext by the CBC padding (1 to 16 bytes). Files
    returned by open() carry the same size.
    """

    def __init__(self, key=None, cipher_method=None, root=None, lock=None, links=None, block_size=None):
        config = get_configuration(
            key=key,
            cipher_method=cipher_method,
            root=root,
            lock=lock,
            links=links,
            block_size=block_size,
        )
        validate_configuration(config)

        self._cipher_method = make_cipher_method(
            config["cipher-method"],
            config["key"],
            resolve_block_size(config),
        )
        self._cipher_lock = threading.Lock()
        self._backend = LocalFilesystemBackend(
            str(config["root"]),
            write_flags=resolve_write_flags(config),
            link_handling=resolve_link_handling(config),
        )
        self._visibility = self._backend.visibility_converter

        _LOG.debug("Encrypted storage at %s using %s", self._backend.root, self._cipher_method.name)

    @property
    def cipher_method(self):
        return self._cipher_method

    @property
    def backend(self):
        return self._backend

    def _location(self, name: str) -> str:
        """Physical name for ``name``: directories as-is, files marked."""
        if self._backend.directory_exists(name):
            return name
        return attach_encryption_marker(name)

    # -------------------------------------------
    # EXISTENCE
    # -------------------------------------------
    def exists(self, name):
        return self.file_exists(name) or self.directory_exists(name)

    def file_exists(self, name):
        return self._backend.file_exists(attach_encryption_marker(name))

    def directory_exists(self, name):
        return self._backend.directory_exists(name)

    # -------------------------------------------
    # WRITE
    # -------------------------------------------
    def write(self, name, content, visibility=None, directory_visibility=None):
        """
        Encrypt ``content`` (bytes, str or any object with ``read()``) into
        the file ``name``. Text is stored UTF-8 encoded. The write only
        returns once the whole encrypted stream has been written out.
        """
        if isinstance(content, str):
            content = content.encode("utf-8")
        if isinstance(content, (bytes, bytearray, memoryview)):
            content = io.BytesIO(content)
        elif isinstance(content.read(0), str):
            content = EncodedTextSource(content)

        location = attach_encryption_marker(name)
        self._backend.ensure_root_directory_exists()
        self._backend.create_directory(
            posixpath.dirname(location),
            self._visibility.resolve_directory_visibility(directory_visibility),
        )

        written = 0
        with self._cipher_lock:
            self._cipher_method.reset()
            encrypted = EncryptingStream(content, self._cipher_method)
            with self._backend.open_for_write(location) as sink:
                while not encrypted.at_eof():
                    block = encrypted.read_block()
                    sink.write(block)
                    written += len(block)

        if visibility:
            self.set_visibility(name, visibility)

        _LOG.debug("Wrote %s (%d encrypted bytes)", location, written)
        return name

    def _save(self, name, content):
        # Same rewind Django's File.chunks() performs before reading.
        try:
            content.seek(0)
        except (AttributeError, io.UnsupportedOperation):
            pass
        return self.write(name, content)

    # -------------------------------------------
    # READ
    # -------------------------------------------
    def read(self, name) -> bytes:
        location = attach_encryption_marker(name)
        with self._cipher_lock:
            self._cipher_method.reset()
            with self._backend.open_for_read(location) as source:
                return DecryptingStream(source, self._cipher_method).readall()

    def read_stream(self, name) -> DecryptingStream:
        """
        Live decrypting stream over ``name``; the caller must close it.

        The stream gets its own cipher instance, so it can be consumed at
        any pace without blocking or corrupting other operations.
        """
        cipher_method = self._cipher_method.fork()
        source = self._backend.open_for_read(attach_encryption_marker(name))
        cipher_method.reset()
        return DecryptingStream(source, cipher_method)

    def _open(self, name, mode="rb"):
        if any(flag in mode for flag in "wax+"):
            raise ValueError(f"{type(self).__name__} only opens files for reading, use save() to write.")
        size = self.size(name)
        stream = self.read_stream(name)
        if "b" not in mode:
            stream = codecs.getreader("utf-8")(stream)
        opened = File(stream, name=name)
        opened.size = size
        return opened

    # -------------------------------------------
    # MOVE / COPY / DELETE
    # -------------------------------------------
    def move(self, source, destination):
        if not self._backend.directory_exists(source):
            source = attach_encryption_marker(source)
            destination = attach_encryption_marker(destination)
        self._backend.move(source, destination)

    def copy(self, source, destination):
        if not self._backend.directory_exists(source):
            source = attach_encryption_marker(source)
            destination = attach_encryption_marker(destination)
        self._backend.copy(source, destination)

    def delete(self, name):
        if not name:
            raise ValueError("The name must be given to delete().")
        if self._backend.directory_exists(name):
            self._backend.delete_directory(name)
        else:
            self._backend.delete(attach_encryption_marker(name))

    def create_directory(self, name, visibility=None):
        self._backend.create_directory(name, self._visibility.resolve_directory_visibility(visibility))

    def delete_directory(self, name):
        self._backend.delete_directory(name)

    # -------------------------------------------
    # METADATA
    # -------------------------------------------
    def size(self, name):
        return self._backend.file_size(self._location(name))

    def mime_type(self, name):
        return self._mime_type(name, self._location(name))

    def _mime_type(self, name, location):
        # The physical name always ends in .enc, the logical one says more.
        physical = self._backend.mime_type(location)
        guessed, _ = mimetypes.guess_type(name)
        return guessed or physical

    def visibility(self, name):
        return self._backend.visibility(self._location(name))

    def set_visibility(self, name, visibility):
        self._backend.set_visibility(self._location(name), visibility)

    def _datetime_from_timestamp(self, ts):
        tz = timezone.utc if settings.USE_TZ else None
        return datetime.fromtimestamp(ts, tz=tz)

    def get_modified_time(self, name):
        return self._datetime_from_timestamp(self._backend.last_modified(self._location(name)))

    def get_accessed_time(self, name):
        return self._datetime_from_timestamp(self._backend.last_accessed(self._location(name)))

    def get_created_time(self, name):
        return self._datetime_from_timestamp(self._backend.created_time(self._location(name)))

    def metadata(self, name) -> dict:
        location = self._location(name)
        return {
            "size": self._backend.file_size(location),
            "mime_type": self._mime_type(name, location),
            "last_modified": self._datetime_from_timestamp(self._backend.last_modified(location)),
            "visibility": self._backend.visibility(location),
        }

    # -------------------------------------------
    # LISTING / URLS
    # -------------------------------------------
    def listdir(self, path):
        directories, files = [], []
        for entry, is_directory in self._backend.list_contents(path):
            if is_directory:
                directories.append(entry)
            elif entry.endswith(FILENAME_POSTFIX):
                files.append(detach_encryption_marker(entry))
        return directories, files

    def url(self, name):
        return build_download_url(name)

"""
Plain local-disk backend the encrypted storage delegates to.

Nothing in here knows about encryption: paths are used exactly as given,
relative to the backend root.
"""

import logging
import mimetypes
import os
import shutil
import stat
from contextlib import contextmanager

from django.core.files import locks
from django.utils._os import safe_join

from .exceptions import NotFound, SymbolicLinkEncountered

_LOG = logging.getLogger(__name__)

SKIP_LINKS = 0b0001
DISALLOW_LINKS = 0b0010

PUBLIC = "public"
PRIVATE = "private"


class PortableVisibilityConverter:
    """Maps the portable public/private visibility onto unix permission bits."""

    def __init__(
        self,
        file_public=0o644,
        file_private=0o600,
        directory_public=0o755,
        directory_private=0o700,
        default_for_directories=PUBLIC,
    ):
        self.file_public = file_public
        self.file_private = file_private
        self.directory_public = directory_public
        self.directory_private = directory_private
        self._default_for_directories = default_for_directories

    def for_file(self, visibility: str) -> int:
        self._validate(visibility)
        return self.file_public if visibility == PUBLIC else self.file_private

    def for_directory(self, visibility: str) -> int:
        self._validate(visibility)
        return self.directory_public if visibility == PUBLIC else self.directory_private

    def inverse_for_file(self, mode: int) -> str:
        if mode == self.file_public:
            return PUBLIC
        if mode == self.file_private:
            return PRIVATE
        return PUBLIC

    def inverse_for_directory(self, mode: int) -> str:
        if mode == self.directory_public:
            return PUBLIC
        if mode == self.directory_private:
            return PRIVATE
        return PUBLIC

    def default_for_directories(self) -> int:
        return self.for_directory(self._default_for_directories)

    def resolve_directory_visibility(self, visibility=None) -> int:
        if visibility is None:
            return self.default_for_directories()
        return self.for_directory(visibility)

    @staticmethod
    def _validate(visibility):
        if visibility not in (PUBLIC, PRIVATE):
            raise ValueError(f"Invalid visibility {visibility!r}, expected 'public' or 'private'.")


class LocalFilesystemBackend:
    def __init__(self, root, visibility=None, write_flags=locks.LOCK_EX, link_handling=DISALLOW_LINKS):
        self.root = os.path.abspath(root)
        self.visibility_converter = visibility or PortableVisibilityConverter()
        self.write_flags = write_flags
        self.link_handling = link_handling
        self._root_ready = False
        self.ensure_root_directory_exists()

    def ensure_root_directory_exists(self):
        if self._root_ready:
            return
        self._make_directories(self.root, self.visibility_converter.default_for_directories())
        self._root_ready = True

    # -------------------------------------------
    # PATHS
    # -------------------------------------------
    def prefix(self, path: str) -> str:
        """Absolute path of ``path`` under the root; raises SuspiciousFileOperation on traversal."""
        return safe_join(self.root, path or "")

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(self.prefix(path))

    def directory_exists(self, path: str) -> bool:
        return os.path.isdir(self.prefix(path))

    # -------------------------------------------
    # DIRECTORIES
    # -------------------------------------------
    def create_directory(self, path: str, mode=None):
        if mode is None:
            mode = self.visibility_converter.default_for_directories()
        self._make_directories(self.prefix(path), mode)

    def delete_directory(self, path: str):
        location = self.prefix(path)
        if not os.path.isdir(location):
            raise NotFound(path)
        shutil.rmtree(location)

    def _make_directories(self, location, mode):
        missing = []
        current = location
        while current and not os.path.isdir(current):
            missing.append(current)
            parent = os.path.dirname(current)
            if parent == current:
                break
            current = parent

        # chmod rather than a temporary umask: the umask is process wide and
        # other threads may be creating files at the same time.
        for directory in reversed(missing):
            try:
                os.mkdir(directory)
            except FileExistsError:
                if not os.path.isdir(directory):
                    raise
                continue
            os.chmod(directory, mode)

    # -------------------------------------------
    # CONTENT
    # -------------------------------------------
    def open_for_read(self, path: str):
        try:
            return open(self.prefix(path), "rb")
        except FileNotFoundError as exc:
            raise NotFound(path) from exc

    @contextmanager
    def open_for_write(self, path: str):
        location = self.prefix(path)
        with open(location, "wb") as sink:
            if self.write_flags:
                locks.lock(sink, self.write_flags)
            try:
                yield sink
                sink.flush()
            finally:
                if self.write_flags:
                    locks.unlock(sink)

    def move(self, source: str, destination: str):
        src = self._existing(source)
        dst = self.prefix(destination)
        self._make_directories(os.path.dirname(dst), self.visibility_converter.default_for_directories())
        os.replace(src, dst)
        _LOG.debug("Moved %s to %s", source, destination)

    def copy(self, source: str, destination: str):
        src = self._existing(source)
        dst = self.prefix(destination)
        self._make_directories(os.path.dirname(dst), self.visibility_converter.default_for_directories())
        if os.path.isdir(src):
            shutil.copytree(src, dst)
        else:
            shutil.copy2(src, dst)
        _LOG.debug("Copied %s to %s", source, destination)

    def delete(self, path: str):
        try:
            os.remove(self.prefix(path))
        except FileNotFoundError as exc:
            raise NotFound(path) from exc

    # -------------------------------------------
    # METADATA
    # -------------------------------------------
    def _existing(self, path):
        location = self.prefix(path)
        if not os.path.lexists(location):
            raise NotFound(path)
        return location

    def _stat(self, path):
        try:
            return os.stat(self.prefix(path))
        except FileNotFoundError as exc:
            raise NotFound(path) from exc

    def file_size(self, path: str) -> int:
        return self._stat(path).st_size

    def last_modified(self, path: str) -> float:
        return self._stat(path).st_mtime

    def last_accessed(self, path: str) -> float:
        return self._stat(path).st_atime

    def created_time(self, path: str) -> float:
        return self._stat(path).st_ctime

    def mime_type(self, path: str) -> str:
        self._existing(path)
        mime_type, _ = mimetypes.guess_type(path)
        return mime_type or "application/octet-stream"

    def visibility(self, path: str) -> str:
        st = self._stat(path)
        mode = stat.S_IMODE(st.st_mode)
        if stat.S_ISDIR(st.st_mode):
            return self.visibility_converter.inverse_for_directory(mode)
        return self.visibility_converter.inverse_for_file(mode)

    def set_visibility(self, path: str, visibility: str):
        location = self._existing(path)
        if os.path.isdir(location):
            mode = self.visibility_converter.for_directory(visibility)
        else:
            mode = self.visibility_converter.for_file(visibility)
        os.chmod(location, mode)

    def list_contents(self, path: str = ""):
        """Yield ``(name, is_directory)`` for the direct children of ``path``."""
        location = self.prefix(path)
        if not os.path.isdir(location):
            raise NotFound(path)
        with os.scandir(location) as entries:
            for entry in entries:
                if entry.is_symlink():
                    if self.link_handling & SKIP_LINKS:
                        continue
                    raise SymbolicLinkEncountered(os.path.join(path, entry.name) if path else entry.name)
                yield entry.name, entry.is_dir()

from django.core.exceptions import ImproperlyConfigured


class EncryptedFilesystemError(Exception):
    """Base class for errors raised by the encrypted filesystem."""


class InvalidConfiguration(EncryptedFilesystemError, ImproperlyConfigured):
    """
    Raised once, while the storage is being set up, when a required
    option is missing or empty.
    """

    def __init__(self, key):
        self.key = key
        super().__init__(f"The encrypted filesystem requires the '{key}' option to be set.")


class InvalidKeyMaterial(EncryptedFilesystemError):
    pass


class CipherStateError(EncryptedFilesystemError):
    """
    A cipher was used outside of a reset -> transform -> final sequence.
    This always points at a sequencing bug in the caller.
    """


class DecryptionError(EncryptedFilesystemError):
    pass


class NotFound(EncryptedFilesystemError, FileNotFoundError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"No encrypted file or directory at '{path}'.")


class SymbolicLinkEncountered(EncryptedFilesystemError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Unsupported symbolic link encountered at '{path}'.")

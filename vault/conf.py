from django.conf import settings
from django.core.files import locks

from .backends import DISALLOW_LINKS, SKIP_LINKS
from .exceptions import InvalidConfiguration

REQUIRED_KEYS = ("key", "cipher-method", "root")

LOCK_MODES = {
    "exclusive": locks.LOCK_EX,
    "shared": locks.LOCK_SH,
    "none": 0,
}


def get_configuration(**overrides) -> dict:
    """
    Settings from ``settings.ENCRYPTED_FILESYSTEM`` with storage options
    layered on top. Keyword options use underscores (``cipher_method``),
    the settings dict uses the dashed names (``cipher-method``).
    """
    config = dict(getattr(settings, "ENCRYPTED_FILESYSTEM", {}) or {})
    for name, value in overrides.items():
        if value is not None:
            config[name.replace("_", "-")] = value
    return config


def validate_configuration(config: dict) -> None:
    for key in REQUIRED_KEYS:
        if not config.get(key):
            raise InvalidConfiguration(key)


def resolve_write_flags(config: dict) -> int:
    lock = config.get("lock")
    if lock is None:
        return locks.LOCK_EX
    if isinstance(lock, bool):
        return locks.LOCK_EX if lock else 0
    if isinstance(lock, int):
        return lock
    try:
        return LOCK_MODES[str(lock).lower()]
    except KeyError:
        raise InvalidConfiguration("lock") from None


def resolve_link_handling(config: dict) -> int:
    return SKIP_LINKS if config.get("links") == "skip" else DISALLOW_LINKS


def resolve_block_size(config: dict):
    block_size = config.get("block-size")
    if block_size in (None, ""):
        return None
    try:
        return int(block_size)
    except (TypeError, ValueError):
        raise InvalidConfiguration("block-size") from None

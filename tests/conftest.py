import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("DJANGO_SECRET_KEY", "test-secret-key-with-enough-bytes-for-hs256-signing")
django.setup()

from utils.storage import EncryptedFileStorage  # noqa: E402

TEST_KEY = "K1-test-key-material"


@pytest.fixture
def storage_root(tmp_path):
    return tmp_path / "vault"


@pytest.fixture
def make_storage(storage_root):
    def factory(**options):
        options.setdefault("key", TEST_KEY)
        options.setdefault("cipher_method", "aes-256-cbc")
        options.setdefault("root", str(storage_root))
        return EncryptedFileStorage(**options)

    return factory


@pytest.fixture
def storage(make_storage):
    return make_storage()

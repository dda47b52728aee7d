import base64
import os
import secrets

from django.core.management.base import BaseCommand

from vault.ciphers import SUPPORTED_METHODS

ENV_TEMPLATE = """
DJANGO_SECRET_KEY={secret}
DEBUG=1
ALLOWED_HOSTS=*

MEDIA_ROOT=media/

ENCRYPTED_FILESYSTEM_KEY={key}
ENCRYPTED_FILESYSTEM_CIPHER={cipher}
ENCRYPTED_FILESYSTEM_ROOT=media/
ENCRYPTED_FILESYSTEM_LOCK=exclusive
ENCRYPTED_FILESYSTEM_LINKS=disallow

DOWNLOAD_TOKEN_TTL_SECONDS=600
PUBLIC_BASE_URL=

LOG_LEVEL=INFO
"""


class Command(BaseCommand):
    help = "Generate .env file with a fresh encryption key"

    def add_arguments(self, parser):
        parser.add_argument(
            "--cipher",
            default="aes-256-cbc",
            choices=sorted(SUPPORTED_METHODS),
            help="Cipher method written to ENCRYPTED_FILESYSTEM_CIPHER.",
        )
        parser.add_argument("--path", default=".env", help="Where to write the file.")

    def handle(self, *args, **options):
        path = options["path"]
        if os.path.exists(path):
            self.stdout.write(self.style.WARNING(f"{path} already exists! Not overwriting."))
            return

        env_contents = ENV_TEMPLATE.format(
            secret=secrets.token_hex(32),
            key="base64:" + base64.b64encode(secrets.token_bytes(32)).decode("ascii"),
            cipher=options["cipher"],
        )

        with open(path, "w") as f:
            f.write(env_contents)

        self.stdout.write(self.style.SUCCESS(f"{path} created successfully!"))

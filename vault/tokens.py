import datetime
from urllib.parse import urlencode

import jwt
from django.conf import settings
from django.urls import reverse

DOWNLOAD_TOKEN_TTL_SECONDS = 600  # 10 minutes
TOKEN_ALGORITHM = "HS256"


# -------------------------------------------
# GENERATE DOWNLOAD TOKEN
# -------------------------------------------
def generate_download_token(name: str, exp_seconds=None) -> str:
    """
    Create an HS256-signed token authorizing a single file download.
    Token includes:
      - logical file name
      - expiration time
      - type: 'download'
    """
    exp_seconds = exp_seconds or getattr(settings, "DOWNLOAD_TOKEN_TTL_SECONDS", DOWNLOAD_TOKEN_TTL_SECONDS)
    now = datetime.datetime.now(datetime.timezone.utc)

    payload = {
        "path": name,
        "iat": int(now.timestamp()),
        "exp": int((now + datetime.timedelta(seconds=exp_seconds)).timestamp()),
        "type": "download",
    }

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=TOKEN_ALGORITHM)


# -------------------------------------------
# VALIDATE DOWNLOAD TOKEN
# -------------------------------------------
def validate_download_token(token: str) -> dict:
    """
    Raises jwt exceptions automatically on failure.
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[TOKEN_ALGORITHM])

    if payload.get("type") != "download":
        raise jwt.InvalidTokenError("Invalid token purpose")

    if not payload.get("path"):
        raise jwt.InvalidTokenError("Token carries no path")

    return payload


# -------------------------------------------
# DOWNLOAD URL
# -------------------------------------------
def _public_base_url(request=None) -> str:
    base = getattr(settings, "PUBLIC_BASE_URL", "") or ""
    if base or request is None:
        return base.rstrip("/")

    scheme = "https" if request.is_secure() else "http"
    forwarded_proto = request.META.get("HTTP_X_FORWARDED_PROTO")
    if forwarded_proto:
        scheme = forwarded_proto.split(",")[0].strip()
    return f"{scheme}://{request.get_host()}"


def build_download_url(name: str, request=None, exp_seconds=None) -> str:
    """
    Signed URL for the download view. Relative when neither PUBLIC_BASE_URL
    nor a request is available to build an absolute one.
    """
    token = generate_download_token(name, exp_seconds)
    query = urlencode({"token": token})
    return f"{_public_base_url(request)}{reverse('vault:download')}?{query}"

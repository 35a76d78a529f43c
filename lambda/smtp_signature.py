from __future__ import annotations

import base64
import hashlib
import hmac

# Regions exposing an SES SMTP endpoint.
SMTP_REGIONS = (
    "us-east-2",  # US East (Ohio)
    "us-east-1",  # US East (N. Virginia)
    "us-west-2",  # US West (Oregon)
    "ap-south-1",  # Asia Pacific (Mumbai)
    "ap-northeast-2",  # Asia Pacific (Seoul)
    "ap-southeast-1",  # Asia Pacific (Singapore)
    "ap-southeast-2",  # Asia Pacific (Sydney)
    "ap-northeast-1",  # Asia Pacific (Tokyo)
    "ca-central-1",  # Canada (Central)
    "eu-central-1",  # Europe (Frankfurt)
    "eu-west-1",  # Europe (Ireland)
    "eu-west-2",  # Europe (London)
    "sa-east-1",  # South America (Sao Paulo)
    "us-gov-west-1",  # AWS GovCloud (US)
)

# Fixed by the SES SMTP signing scheme. Do not change them.
DATE = "11111111"
SERVICE = "ses"
MESSAGE = "SendRawEmail"
TERMINAL = "aws4_request"
VERSION = b"\x04"


class UnsupportedRegionError(ValueError):
    def __init__(self, region: str) -> None:
        self.region = region
        super().__init__(f"The {region} region doesn't have an SMTP endpoint.")


def ensure_smtp_region(region: str) -> str:
    if region not in SMTP_REGIONS:
        raise UnsupportedRegionError(region)
    return region


def _sign(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def derive_smtp_password(secret_access_key: str, region: str) -> str:
    """Derive the SES SMTP password for an IAM secret access key.

    The result depends only on the key and the region, so it can be
    recomputed at any time and always matches what SES verifies.
    """

    ensure_smtp_region(region)

    signature = _sign(("AWS4" + secret_access_key).encode("utf-8"), DATE)
    signature = _sign(signature, region)
    signature = _sign(signature, SERVICE)
    signature = _sign(signature, TERMINAL)
    signature = _sign(signature, MESSAGE)

    return base64.b64encode(VERSION + signature).decode("ascii")

import hashlib
import hmac
import time

from enum import Enum
from typing import Optional, Union

# Slack rejects requests older than this, so do we.
MAX_REQUEST_AGE = 300


class VerificationStatus(Enum):
    VERIFIED = 1
    BAD_SIGNATURE = 2
    OUTDATED_REQUEST = 3
    INVALID_TIMESTAMP = 4


def _as_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return bytes(value, "utf-8")


def compute_signature(
    secret: str,
    body: Union[str, bytes],
    req_ts: Union[str, int]
) -> str:
    """Returns the `X-Slack-Signature` value Slack would send for this body."""
    bs = b"v0:" + _as_bytes(str(req_ts)) + b":" + _as_bytes(body)
    hsh = hmac.new(
            bytes(secret, "utf-8"),
            msg=bs,
            digestmod=hashlib.sha256).hexdigest()
    return f"v0={hsh}"


def verify_signature(
    secret: str,
    body: Union[str, bytes],
    req_sig: Optional[str],
    req_ts: Union[str, int, None],
    now: Optional[float] = None
) -> VerificationStatus:
    """Perform request signature verification.

    Requires the signing secret from your Slack application.
    The other parameters are the raw request body (from Slack, exactly as
    received), request signature, and the request timestamp as found in the
    `X-Slack-Request-Timestamp` header. `now` defaults to the current time.

    See https://api.slack.com/authentication/verifying-requests-from-slack"""
    try:
        ts = int(req_ts)
    except (TypeError, ValueError):
        return VerificationStatus.INVALID_TIMESTAMP

    if now is None:
        now = time.time()
    if abs(int(now) - ts) > MAX_REQUEST_AGE:
        # request timestamp is old, so ignore this request as it could be
        # a replay
        return VerificationStatus.OUTDATED_REQUEST

    if not req_sig:
        return VerificationStatus.BAD_SIGNATURE

    signature = compute_signature(secret, body, req_ts)
    if hmac.compare_digest(_as_bytes(signature), _as_bytes(req_sig)):
        return VerificationStatus.VERIFIED
    return VerificationStatus.BAD_SIGNATURE

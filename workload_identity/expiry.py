"""
Expiry extraction from compact JWTs (<header>.<payload>.<signature>).
Only the payload's exp claim is read, for refresh scheduling. The signature is NOT verified;
never use the result for an authorization decision.
"""
import binascii
import json
import re
from datetime import datetime, timedelta, timezone

from jwt.utils import base64url_decode

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# base64url alphabet, unpadded
_SEGMENT = re.compile(r"[A-Za-z0-9_-]+")


def parse_expiration(token: str) -> datetime | None:
    """
    Assume the token is a JWT and return its exp claim as an aware UTC datetime.
    Returns None for anything that isn't three dot-separated segments with a base64url JSON
    payload holding a non-negative integer exp (RFC 7519 §4.1.4) inside the datetime range.
    """
    segments = token.rsplit(".", 2)
    if len(segments) != 3:
        return None
    payload_segment = segments[1]
    if not _SEGMENT.fullmatch(payload_segment):
        return None
    try:
        payload = json.loads(base64url_decode(payload_segment))
    except (binascii.Error, ValueError, UnicodeDecodeError, RecursionError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    # bool is an int subclass; reject it along with floats and strings
    if not isinstance(exp, int) or isinstance(exp, bool) or exp < 0:
        return None
    try:
        return _EPOCH + timedelta(seconds=exp)
    except OverflowError:
        return None

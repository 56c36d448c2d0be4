import base64, hashlib, hmac
from typing import Optional

from flask import request, abort

def verify_webhook_hmac(secret: Optional[str]):
    """Check X-Shopify-Hmac-Sha256 when the store has a secret configured; returns the raw body."""
    raw = request.get_data()
    if not secret:
        return raw
    their_hmac = request.headers.get("X-Shopify-Hmac-Sha256", "")
    digest = hmac.new(secret.encode(), raw, hashlib.sha256).digest()
    if not hmac.compare_digest(base64.b64encode(digest).decode(), their_hmac):
        abort(401)
    return raw

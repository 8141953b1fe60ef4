"""Rate limiter. Import from here to avoid circular deps.

Keyed on the socket peer. Behind a proxy, uvicorn rewrites the peer from
X-Forwarded-For only for addresses in ``forwarded_allow_ips`` (see
gunicorn.conf.py), so clients cannot pick their own bucket.

Attached to ``app.state.limiter`` in main. With the default ``memory://``
storage the limits are per process; point RATE_LIMIT_STORAGE_URI at Redis to
share them across instances.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from backoffice.core.config import settings

limiter = Limiter(key_func=get_remote_address, storage_uri=settings.RATE_LIMIT_STORAGE_URI)

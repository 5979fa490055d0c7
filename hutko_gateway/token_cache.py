import hashlib
import logging
from datetime import timedelta
from typing import Callable

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from hutko_gateway.models import CheckoutToken, utcnow

logger = logging.getLogger(__name__)


def token_key(merchant_id, order_id, amount, currency) -> str:
    digest = hashlib.md5(f"{merchant_id}_{order_id}_{amount}_{currency}".encode("utf-8")).hexdigest()
    return f"session_token_{digest}"


class TokenCache:
    """Checkout tokens keyed by (merchant, order, amount, currency).

    A repeated checkout for an unchanged order reuses the live token instead of
    opening a second session with hutko.
    """

    def __init__(self, session_factory, ttl_seconds: int = 86400):
        self._session_factory = session_factory
        self.ttl = timedelta(seconds=ttl_seconds)

    def acquire(self, key: str, mint: Callable[[], str]) -> str:
        db = self._session_factory()
        try:
            now = utcnow()
            entry = db.get(CheckoutToken, key)
            if entry is not None:
                if entry.expires_at > now:
                    return entry.token
                db.delete(entry)
                db.commit()

            token = mint()
            db.add(CheckoutToken(key=key, token=token, created_at=now, expires_at=now + self.ttl))
            try:
                db.commit()
            except IntegrityError:
                # Someone stored a token for this key between our read and insert.
                db.rollback()
                winner = db.get(CheckoutToken, key)
                if winner is None:
                    raise
                logger.info("Concurrent checkout token for %s, reusing the stored one", key)
                return winner.token
            return token
        finally:
            db.close()

    def invalidate(self, key: str) -> None:
        db = self._session_factory()
        try:
            db.execute(delete(CheckoutToken).where(CheckoutToken.key == key))
            db.commit()
        finally:
            db.close()

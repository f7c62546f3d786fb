# storefront/services/token_store.py
import json
import secrets

import redis

from storefront.domain.errors import InvalidOrExpiredToken
from storefront.utils.logging import get_logger
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, RESET_TOKEN_TTL_SECONDS, VERIFY_TOKEN_TTL_SECONDS

logger = get_logger(__name__)

#LUA porównaj i usuń, atomicity
#indeks email->token kasujemy tylko jeśli nadal wskazuje na ten token
#(po resend może już wskazywać na nowszy)
_RELEASE_INDEX_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


def _verify_key(token: str) -> str:
    return f"verify:{token}"


def _email_key(email: str) -> str:
    return f"unverified-email:{email}"


def _reset_key(token: str) -> str:
    return f"reset:{token}"


def new_token() -> str:
    return secrets.token_hex(32)


class TokenStore:
    """
    Jednorazowe tokeny (weryfikacja email, reset hasła) w Redisie.
    - każdy klucz ma obowiązkowe EX
    - konsumpcja przez GETDEL: dwie równoległe próby -> dokładnie jeden sukces
    """

    def __init__(self, client: redis.Redis | None = None, url: str | None = None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)

    # =====================================================
    # WERYFIKACJA EMAIL
    # =====================================================
    @redis_retry()
    def create_verification(self, email: str, payload: dict) -> str:
        token = new_token()
        # MULTI: oba klucze albo żaden
        pipe = self.redis.pipeline(transaction=True)
        pipe.set(_verify_key(token), json.dumps(payload), ex=VERIFY_TOKEN_TTL_SECONDS)
        pipe.set(_email_key(email), token, ex=VERIFY_TOKEN_TTL_SECONDS)
        pipe.execute()
        logger.info(f"Verification token issued for {email}")
        return token

    @redis_retry()
    def consume_verification(self, token: str) -> dict:
        raw = self.redis.getdel(_verify_key(token))
        if raw is None:
            raise InvalidOrExpiredToken("Verification link expired or invalid.")
        return json.loads(raw)

    @redis_retry()
    def pending_verification(self, email: str) -> tuple[str, dict] | tuple[None, None]:
        token = self.redis.get(_email_key(email))
        if not token:
            return None, None

        raw = self.redis.get(_verify_key(token))
        if raw is None:
            # niespójny stan: indeks bez danych, sprzątamy
            self.redis.delete(_email_key(email))
            return None, None

        return token, json.loads(raw)

    @redis_retry()
    def rotate_verification(self, email: str, old_token: str, payload: dict) -> str:
        token = new_token()
        pipe = self.redis.pipeline(transaction=True)
        pipe.delete(_verify_key(old_token))
        pipe.delete(_email_key(email))
        pipe.set(_verify_key(token), json.dumps(payload), ex=VERIFY_TOKEN_TTL_SECONDS)
        pipe.set(_email_key(email), token, ex=VERIFY_TOKEN_TTL_SECONDS)
        pipe.execute()
        logger.info(f"Verification token rotated for {email}")
        return token

    @redis_retry()
    def release_email_index(self, email: str, token: str) -> bool:
        res = self.redis.eval(_RELEASE_INDEX_LUA, 1, _email_key(email), token)
        return bool(res)

    # =====================================================
    # RESET HASŁA
    # =====================================================
    @redis_retry()
    def create_reset(self, email: str) -> str:
        token = new_token()
        self.redis.set(_reset_key(token), email, ex=RESET_TOKEN_TTL_SECONDS)
        logger.info(f"Password reset token issued for {email}")
        return token

    @redis_retry()
    def consume_reset(self, token: str) -> str:
        email = self.redis.getdel(_reset_key(token))
        if email is None:
            raise InvalidOrExpiredToken("Password reset token is invalid or has expired.")
        return email

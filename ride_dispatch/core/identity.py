# ride_dispatch/core/identity.py
"""
Идентификация вызывающего по токену доступа.

Токен: base64url(JSON {"sub", "iat"}) + "." + HMAC-SHA256 подпись в hex.
Выпуском токенов для пользователей занимается внешний сервис,
issue_token нужен ему и тестам.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Protocol

from ride_dispatch.core.exceptions import NotAuthorizedError

# Допустимое расхождение часов выпускающего сервиса, секунды
CLOCK_SKEW_SECONDS = 60


class Authenticator(Protocol):
    """Разрешает токен в идентификатор участника."""

    def authenticate(self, token: str) -> str: ...


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class HmacTokenAuthenticator:
    """Проверка подписанных токенов с ограниченным сроком жизни."""

    def __init__(self, secret: str, max_age_seconds: int = 86400) -> None:
        if not secret:
            raise ValueError("TOKEN_SECRET не задан")
        self._key = secret.encode()
        self._max_age = max_age_seconds

    def _sign(self, payload: str) -> str:
        return hmac.new(self._key, payload.encode(), hashlib.sha256).hexdigest()

    def issue_token(self, party_id: str, issued_at: int | None = None) -> str:
        """Выпускает токен для участника."""
        body = json.dumps(
            {"sub": party_id, "iat": int(time.time()) if issued_at is None else issued_at},
            separators=(",", ":"),
        )
        payload = _b64encode(body.encode())
        return f"{payload}.{self._sign(payload)}"

    def authenticate(self, token: str) -> str:
        """
        Проверяет подпись и возраст токена.

        Returns:
            Идентификатор участника

        Raises:
            NotAuthorizedError: Токен отсутствует, подделан или устарел
        """
        if not token or token.count(".") != 1:
            raise NotAuthorizedError("Некорректный токен доступа")

        payload, signature = token.split(".")
        if not hmac.compare_digest(self._sign(payload), signature):
            raise NotAuthorizedError("Невалидная подпись токена")

        try:
            data = json.loads(_b64decode(payload))
            party_id = data["sub"]
            issued_at = int(data["iat"])
        except (ValueError, KeyError, TypeError) as e:
            raise NotAuthorizedError(f"Ошибка разбора токена: {e}") from e

        if not isinstance(party_id, str) or not party_id:
            raise NotAuthorizedError("Токен не содержит идентификатор участника")
        now = time.time()
        if issued_at > now + CLOCK_SKEW_SECONDS:
            raise NotAuthorizedError("Токен выпущен в будущем")
        if now - issued_at > self._max_age:
            raise NotAuthorizedError("Срок действия токена истёк")
        return party_id


class DevAuthenticator:
    """
    Режим разработки: токен и есть идентификатор участника.
    Включается только при RUN_DEV_MODE и пустом TOKEN_SECRET.
    """

    def authenticate(self, token: str) -> str:
        if not token:
            raise NotAuthorizedError("Токен доступа не передан")
        return token


def build_authenticator() -> Authenticator:
    """Аутентификатор по настройкам."""
    from ride_dispatch.config import settings

    if settings.auth.TOKEN_SECRET:
        return HmacTokenAuthenticator(settings.auth.TOKEN_SECRET, settings.auth.TOKEN_MAX_AGE_SECONDS)
    if settings.system.RUN_DEV_MODE:
        return DevAuthenticator()
    raise RuntimeError("TOKEN_SECRET не задан, а режим разработки выключен")

"""Push delivery port and its Firebase Cloud Messaging adapter."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

import firebase_admin
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging

from app.core.config import Settings
from app.core.errors import DeliveryFailure

logger = logging.getLogger(__name__)

INVALID_TOKEN_CODES = frozenset({"invalid-registration-token", "registration-token-not-registered"})
REQUIRED_SERVICE_ACCOUNT_FIELDS = ("project_id", "private_key", "client_email")
FIREBASE_APP_NAME = "masjid-push"


@dataclass
class TokenResult:
    token: str
    success: bool
    error_code: str | None = None

    @property
    def token_invalid(self) -> bool:
        return not self.success and self.error_code in INVALID_TOKEN_CODES


@dataclass
class BatchResult:
    results: list[TokenResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def invalid_tokens(self) -> list[str]:
        return [result.token for result in self.results if result.token_invalid]


class PushGateway(Protocol):
    def send_batch(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> BatchResult: ...


def stringify_data(data: Mapping[str, Any] | None) -> dict[str, str]:
    """FCM data payloads only carry strings; ``None`` becomes an empty string."""

    return {str(key): "" if value is None else str(value) for key, value in (data or {}).items()}


def _error_code(exc: BaseException | None) -> str:
    if exc is None:
        return "unknown"
    if isinstance(exc, messaging.UnregisteredError):
        return "registration-token-not-registered"
    if isinstance(exc, firebase_exceptions.InvalidArgumentError):
        # FCM reports bad tokens and bad payloads (size, reserved keys) with the same status.
        if "registration token" in str(exc).lower():
            return "invalid-registration-token"
        return "invalid-argument"
    code = getattr(exc, "code", None)
    return str(code).lower().replace("_", "-") if code else "unknown"


class FirebasePushGateway:
    def __init__(self, app: firebase_admin.App):
        self._app = app

    def _build_messages(self, tokens: Sequence[str], title: str, body: str, data: Mapping[str, str]):
        notification = messaging.Notification(title=title, body=body)
        android = messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(sound="default", channel_id="default"),
        )
        apns = messaging.APNSConfig(
            headers={"apns-priority": "10"},
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1, content_available=True)),
        )
        return [
            messaging.Message(token=token, notification=notification, data=dict(data), android=android, apns=apns)
            for token in tokens
        ]

    def send_batch(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> BatchResult:
        if not title or not body:
            raise DeliveryFailure("Title and body are required", error_code="invalid-payload")
        if not tokens:
            return BatchResult()

        try:
            response = messaging.send_each(
                self._build_messages(tokens, title, body, stringify_data(data)),
                app=self._app,
            )
        except firebase_exceptions.FirebaseError as exc:
            raise DeliveryFailure(f"FCM request failed: {exc}", error_code=_error_code(exc)) from exc

        results: list[TokenResult] = []
        for token, item in zip(tokens, response.responses):
            if item.success:
                results.append(TokenResult(token=token, success=True))
            else:
                results.append(TokenResult(token=token, success=False, error_code=_error_code(item.exception)))
        return BatchResult(results=results)


class DisabledPushGateway:
    """Used when push is switched off or Firebase has no credentials."""

    def send_batch(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Mapping[str, str],
    ) -> BatchResult:
        logger.debug("push_disabled_skip", extra={"tokens": len(tokens)})
        return BatchResult(results=[TokenResult(token=token, success=False, error_code="push-disabled") for token in tokens])


def load_service_account(raw: str) -> dict[str, Any]:
    """Accept either inline JSON or a path to the service-account key file."""

    text = raw.strip()
    if not text.startswith("{") and os.path.exists(text):
        with open(text, encoding="utf-8") as handle:
            text = handle.read()
    info = json.loads(text)
    missing = [name for name in REQUIRED_SERVICE_ACCOUNT_FIELDS if not info.get(name)]
    if missing:
        raise ValueError(f"Firebase service account is missing: {', '.join(missing)}")
    if isinstance(info.get("private_key"), str):
        info["private_key"] = info["private_key"].replace("\\n", "\n")
    return info


def build_push_gateway(config: Settings) -> PushGateway:
    if not config.PUSH_ENABLED or not config.FIREBASE_SERVICE_ACCOUNT_KEY:
        logger.warning("push_gateway_disabled", extra={"push_enabled": config.PUSH_ENABLED})
        return DisabledPushGateway()
    try:
        info = load_service_account(config.FIREBASE_SERVICE_ACCOUNT_KEY)
    except (OSError, ValueError) as exc:
        logger.error("firebase_credentials_invalid", extra={"error": str(exc)})
        return DisabledPushGateway()

    try:
        app = firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        try:
            app = firebase_admin.initialize_app(credentials.Certificate(info), name=FIREBASE_APP_NAME)
        except ValueError as exc:
            logger.error("firebase_init_failed", extra={"error": str(exc)})
            return DisabledPushGateway()
    logger.info("firebase_initialized", extra={"project_id": info.get("project_id")})
    return FirebasePushGateway(app)

"""Notification fan-out.

One invocation runs strictly in order: candidate selection, preference
resolution, delivery in gateway-sized batches, then reconciliation of
permanently invalid tokens. Nothing raised in here is meant to reach the
request that caused the notification; failures are logged and reported in
the returned ``FanoutResult``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, NamedTuple, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.core.config import Settings, settings as default_settings
from app.core.db import apply_statement_timeout
from app.core.errors import DeliveryFailure, FanoutTimeout
from app.models.membership import MasjidMembership
from app.models.question import Question
from app.models.subscription import MasjidSubscription
from app.services import memberships as membership_service
from app.services import preferences, subscriptions
from app.services.push_gateway import PushGateway, stringify_data
from app.services.permissions import Role

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for a statement cancelled by statement_timeout.
QUERY_CANCELED = "57014"
# Keeps the notification well inside the 4KB FCM payload limit.
MAX_BODY_LENGTH = 1000


class Candidate(NamedTuple):
    subscription_id: int
    user_id: int | None
    device_id: str | None
    token: str | None


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, title: str, body: str, data: Mapping[str, Any] | None = None) -> "PushMessage":
        if len(body) > MAX_BODY_LENGTH:
            body = body[: MAX_BODY_LENGTH - 3] + "..."
        return cls(title=title, body=body, data=stringify_data(data))


@dataclass
class FanoutResult:
    candidates: int = 0
    eligible: int = 0
    total: int = 0
    sent: int = 0
    failed: int = 0
    deactivated: int = 0
    aborted: bool = False


def collect_tokens(candidates: Iterable[Candidate]) -> list[str]:
    """Trimmed, non-empty, de-duplicated tokens in candidate order."""

    seen: set[str] = set()
    tokens: list[str] = []
    for candidate in candidates:
        token = (candidate.token or "").strip()
        if token and token not in seen:
            seen.add(token)
            tokens.append(token)
    return tokens


def chunked(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _is_timeout(exc: SQLAlchemyError) -> bool:
    return isinstance(exc, OperationalError) and getattr(exc.orig, "pgcode", None) == QUERY_CANCELED


class FanoutEngine:
    def __init__(
        self,
        db: Session,
        gateway: PushGateway,
        *,
        candidate_limit: int,
        batch_size: int,
        query_timeout: float,
    ):
        self.db = db
        self.gateway = gateway
        self.candidate_limit = candidate_limit
        self.batch_size = batch_size
        self.query_timeout = query_timeout

    @classmethod
    def from_settings(cls, db: Session, gateway: PushGateway, config: Settings | None = None) -> "FanoutEngine":
        config = config or default_settings
        return cls(
            db,
            gateway,
            candidate_limit=config.FANOUT_CANDIDATE_LIMIT,
            batch_size=config.PUSH_BATCH_SIZE,
            query_timeout=config.FANOUT_QUERY_TIMEOUT_SECONDS,
        )

    # candidate queries

    def _candidate_query(self) -> Query:
        return self.db.query(
            MasjidSubscription.id,
            MasjidSubscription.user_id,
            MasjidSubscription.device_id,
            MasjidSubscription.fcm_token,
        ).filter(
            MasjidSubscription.is_active.is_(True),
            MasjidSubscription.fcm_token.isnot(None),
            MasjidSubscription.fcm_token != "",
        )

    def _fetch(self, query: Query) -> list[Candidate]:
        rows = query.order_by(MasjidSubscription.id).limit(self.candidate_limit).all()
        return [Candidate(*row) for row in rows]

    def _filter_by_preference(self, candidates: list[Candidate], preference: str) -> list[Candidate]:
        user_settings = preferences.load_user_settings(
            self.db, (c.user_id for c in candidates if c.user_id is not None)
        )
        device_settings = preferences.load_device_settings(
            self.db, (c.device_id for c in candidates if c.user_id is None and c.device_id)
        )
        eligible: list[Candidate] = []
        for candidate in candidates:
            if candidate.user_id is not None:
                row = user_settings.get(candidate.user_id)
            elif candidate.device_id:
                row = device_settings.get(candidate.device_id)
            else:
                continue
            if preferences.is_enabled(row, preference):
                eligible.append(candidate)
        return eligible

    # pipeline

    def _run(
        self,
        *,
        load: Callable[[], list[Candidate]],
        preference: str,
        message: PushMessage,
        reconcile_masjid_id: int | None,
        context: dict[str, Any],
    ) -> FanoutResult:
        result = FanoutResult()
        try:
            apply_statement_timeout(self.db, self.query_timeout)
            candidates = load()
            eligible = self._filter_by_preference(candidates, preference)
            # End the read transaction so the timeout does not leak into reconciliation.
            self.db.rollback()
        except SQLAlchemyError as exc:
            self.db.rollback()
            failure = (
                FanoutTimeout(f"Fan-out queries exceeded {self.query_timeout}s")
                if _is_timeout(exc)
                else DeliveryFailure(str(exc), error_code="query-failed")
            )
            logger.error(
                "fanout_candidates_failed",
                extra={**context, "error_code": failure.error_code, "error": failure.message},
            )
            result.aborted = True
            return result

        result.candidates = len(candidates)
        result.eligible = len(eligible)
        tokens = collect_tokens(eligible)
        result.total = len(tokens)
        if not tokens:
            logger.info("fanout_no_recipients", extra={**context, "candidates": result.candidates})
            return result

        invalid_tokens: list[str] = []
        for batch in chunked(tokens, self.batch_size):
            try:
                batch_result = self.gateway.send_batch(batch, message.title, message.body, message.data)
            except DeliveryFailure as exc:
                result.failed += len(batch)
                logger.warning(
                    "fanout_batch_failed",
                    extra={**context, "batch": len(batch), "error_code": exc.error_code, "error": exc.message},
                )
                continue
            except Exception:
                result.failed += len(batch)
                logger.exception("fanout_batch_error", extra={**context, "batch": len(batch)})
                continue
            result.sent += batch_result.successful
            result.failed += batch_result.failed
            invalid_tokens.extend(batch_result.invalid_tokens)
            transient = [item.error_code for item in batch_result.results if not item.success and not item.token_invalid]
            if transient:
                logger.warning(
                    "fanout_transient_failures",
                    extra={**context, "count": len(transient), "error_codes": sorted(set(transient))},
                )

        if invalid_tokens:
            result.deactivated = self._reconcile(reconcile_masjid_id, invalid_tokens, context)

        logger.info(
            "fanout_completed",
            extra={
                **context,
                "total": result.total,
                "sent": result.sent,
                "failed": result.failed,
                "deactivated": result.deactivated,
            },
        )
        return result

    def _reconcile(self, masjid_id: int | None, tokens: list[str], context: dict[str, Any]) -> int:
        try:
            return subscriptions.deactivate_invalid_tokens(self.db, masjid_id, tokens)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("fanout_reconcile_failed", extra={**context, "tokens": len(tokens)})
            return 0

    # entry points

    def broadcast(
        self,
        masjid_id: int,
        category: str,
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
        *,
        exclude_user_ids: Iterable[int] = (),
    ) -> FanoutResult:
        """Push to every active subscriber of a masjid who has ``category`` enabled."""

        preference = preferences.preference_for_category(category)
        excluded = sorted(set(exclude_user_ids))

        def load() -> list[Candidate]:
            query = self._candidate_query().filter(MasjidSubscription.masjid_id == masjid_id)
            if excluded:
                query = query.filter(
                    or_(MasjidSubscription.user_id.is_(None), MasjidSubscription.user_id.notin_(excluded))
                )
            return self._fetch(query)

        return self._run(
            load=load,
            preference=preference,
            message=PushMessage.build(title, body, {"category": category, **(data or {})}),
            reconcile_masjid_id=masjid_id,
            context={"masjid_id": masjid_id, "category": category, "fanout": "broadcast"},
        )

    def notify_staff_of_question(self, question: Question, masjid_name: str) -> FanoutResult:
        """Tell the masjid's question handlers that a new question arrived."""

        def load() -> list[Candidate]:
            staff_ids = membership_service.staff_user_ids(self.db, question.masjid_id, "can_view_questions")
            if not staff_ids:
                return []
            return self._fetch(self._candidate_query().filter(MasjidSubscription.user_id.in_(staff_ids)))

        message = PushMessage.build(
            f"New Question - {masjid_name}",
            question.title,
            {
                "masjidId": question.masjid_id,
                "masjidName": masjid_name,
                "questionId": question.id,
                "type": "question_created",
            },
        )
        return self._run(
            load=load,
            preference="questions",
            message=message,
            reconcile_masjid_id=None,
            context={"masjid_id": question.masjid_id, "question_id": question.id, "fanout": "question_created"},
        )

    def _reply_candidates(self, question: Question) -> list[Candidate]:
        base = self._candidate_query().filter(MasjidSubscription.masjid_id == question.masjid_id)
        if question.user_id is not None:
            return self._fetch(base.filter(MasjidSubscription.user_id == question.user_id))
        if not question.device_id:
            return []
        anonymous = base.filter(MasjidSubscription.user_id.is_(None))
        exact = self._fetch(anonymous.filter(MasjidSubscription.device_id == question.device_id))
        if exact:
            return exact
        # Device ids can drift between client versions; over-deliver rather than lose the reply.
        fallback = self._fetch(anonymous)
        logger.warning(
            "reply_recipient_fallback",
            extra={"masjid_id": question.masjid_id, "question_id": question.id, "recipients": len(fallback)},
        )
        return fallback

    def notify_question_reply(self, question: Question, masjid_name: str) -> FanoutResult:
        message = PushMessage.build(
            f"Your question was answered - {masjid_name}",
            question.title,
            {
                "masjidId": question.masjid_id,
                "masjidName": masjid_name,
                "questionId": question.id,
                "type": "question_reply",
            },
        )
        return self._run(
            load=lambda: self._reply_candidates(question),
            preference="questions",
            message=message,
            reconcile_masjid_id=question.masjid_id,
            context={"masjid_id": question.masjid_id, "question_id": question.id, "fanout": "question_reply"},
        )

    def notify_imams(
        self,
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
        *,
        masjid_id: int | None = None,
    ) -> FanoutResult:
        """Push to the subscriptions of every imam, optionally of a single masjid."""

        def load() -> list[Candidate]:
            imams = select(MasjidMembership.user_id).where(MasjidMembership.role == Role.IMAM.value)
            if masjid_id is not None:
                imams = imams.where(MasjidMembership.masjid_id == masjid_id)
            return self._fetch(self._candidate_query().filter(MasjidSubscription.user_id.in_(imams.distinct())))

        return self._run(
            load=load,
            preference="general",
            message=PushMessage.build(title, body, {"type": "super_admin_broadcast", **(data or {})}),
            reconcile_masjid_id=None,
            context={"masjid_id": masjid_id, "fanout": "imams_broadcast"},
        )

"""Detached fan-out execution.

Routers schedule dispatcher methods as FastAPI background tasks, which run
after the response has been sent. Each task opens its own session and is its
own error boundary: whatever happens inside, the triggering request has
already succeeded.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from fastapi import Request
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.models.masjid import Masjid
from app.models.notification import Notification
from app.models.question import Question
from app.services.announcements import announcement_fanout_required
from app.services.fanout import FanoutEngine, FanoutResult
from app.services.push_gateway import PushGateway

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        gateway: PushGateway,
        config: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.config = config or default_settings

    def _run(self, name: str, operation: Callable[[FanoutEngine], FanoutResult | None], **context: Any) -> FanoutResult | None:
        db = self.session_factory()
        try:
            engine = FanoutEngine.from_settings(db, self.gateway, self.config)
            return operation(engine)
        except Exception:
            db.rollback()
            logger.exception("fanout_task_failed", extra={"task": name, **context})
            return None
        finally:
            db.close()

    def broadcast(
        self,
        masjid_id: int,
        category: str,
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
        exclude_user_ids: tuple[int, ...] = (),
    ) -> FanoutResult | None:
        return self._run(
            "broadcast",
            lambda engine: engine.broadcast(
                masjid_id, category, title, body, data, exclude_user_ids=exclude_user_ids
            ),
            masjid_id=masjid_id,
            category=category,
        )

    def announcement_created(self, notification_id: int) -> FanoutResult | None:
        def operation(engine: FanoutEngine) -> FanoutResult | None:
            notification = engine.db.get(Notification, notification_id)
            if notification is None:
                logger.warning("announcement_missing", extra={"notification_id": notification_id})
                return None
            if not announcement_fanout_required(notification):
                logger.info(
                    "announcement_fanout_skipped",
                    extra={"notification_id": notification_id, "source": notification.source},
                )
                return None
            masjid = engine.db.get(Masjid, notification.masjid_id)
            return engine.broadcast(
                notification.masjid_id,
                notification.category,
                notification.title,
                notification.description,
                {
                    "masjidId": notification.masjid_id,
                    "masjidName": masjid.name if masjid else "",
                    "notificationId": notification.id,
                    "type": "announcement",
                },
            )

        return self._run("announcement_created", operation, notification_id=notification_id)

    def _with_question(self, question_id: int, notify: Callable[[FanoutEngine, Question, str], FanoutResult]):
        def operation(engine: FanoutEngine) -> FanoutResult | None:
            question = engine.db.get(Question, question_id)
            if question is None:
                logger.warning("question_missing", extra={"question_id": question_id})
                return None
            masjid = engine.db.get(Masjid, question.masjid_id)
            return notify(engine, question, masjid.name if masjid else "")

        return operation

    def question_created(self, question_id: int) -> FanoutResult | None:
        return self._run(
            "question_created",
            self._with_question(question_id, lambda engine, q, name: engine.notify_staff_of_question(q, name)),
            question_id=question_id,
        )

    def question_replied(self, question_id: int) -> FanoutResult | None:
        return self._run(
            "question_replied",
            self._with_question(question_id, lambda engine, q, name: engine.notify_question_reply(q, name)),
            question_id=question_id,
        )

    def imams_broadcast(
        self,
        title: str,
        body: str,
        data: Mapping[str, Any] | None = None,
        masjid_id: int | None = None,
    ) -> FanoutResult | None:
        return self._run(
            "imams_broadcast",
            lambda engine: engine.notify_imams(title, body, data, masjid_id=masjid_id),
            masjid_id=masjid_id,
        )


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher

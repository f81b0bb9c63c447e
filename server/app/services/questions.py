from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import ValidationFailedError
from app.models.masjid import Masjid
from app.models.question import Question
from app.models.user import User
from app.services.device_identity import Recipient

logger = logging.getLogger(__name__)


def submit_question(
    db: Session,
    masjid: Masjid,
    *,
    recipient: Recipient | None,
    user_name: str,
    user_email: str | None,
    title: str,
    question: str,
) -> Question:
    record = Question(
        masjid_id=masjid.id,
        user_id=recipient.user_id if recipient else None,
        device_id=recipient.device_id if recipient else None,
        user_name=user_name,
        user_email=user_email,
        title=title,
        question=question,
        status="new",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        "question_submitted",
        extra={
            "masjid_id": masjid.id,
            "question_id": record.id,
            "asker_kind": "user" if record.user_id else ("device" if record.device_id else "unknown"),
        },
    )
    return record


def reply_to_question(db: Session, actor: User, question: Question, reply: str) -> Question:
    text = reply.strip()
    if not text:
        raise ValidationFailedError("Reply is required")
    question.reply = text
    question.status = "replied"
    question.replied_by_id = actor.id
    question.replied_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(question)
    logger.info("question_replied", extra={"question_id": question.id, "replied_by": actor.id})
    return question


def questions_for_recipient(db: Session, recipient: Recipient) -> list[Question]:
    query = db.query(Question)
    if recipient.is_user:
        query = query.filter(Question.user_id == recipient.user_id)
    else:
        query = query.filter(Question.device_id == recipient.device_id, Question.user_id.is_(None))
    return list(query.order_by(Question.created_at.desc(), Question.id.desc()).all())


def question_statistics(db: Session, masjid_id: int) -> dict[str, int]:
    rows = (
        db.query(Question.status, func.count(Question.id))
        .filter(Question.masjid_id == masjid_id)
        .group_by(Question.status)
        .all()
    )
    counts = {status: int(count) for status, count in rows}
    return {
        "total": sum(counts.values()),
        "new": counts.get("new", 0),
        "replied": counts.get("replied", 0),
    }

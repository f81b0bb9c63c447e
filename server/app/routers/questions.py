from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user, get_device_identity, get_optional_user, require_masjid_permission
from app.core.db import get_db
from app.models.masjid import Masjid
from app.models.question import Question
from app.models.user import User
from app.schemas.device import DeviceIdentity
from app.schemas.question import (
    QuestionCreate,
    QuestionListResponse,
    QuestionOut,
    QuestionReply,
    QuestionStatistics,
    QuestionStatus,
)
from app.services import permissions
from app.services import questions as question_service
from app.services.device_identity import Recipient, resolve_recipient
from app.services.dispatch import NotificationDispatcher, get_dispatcher
from app.services.masjids import get_masjid_or_404
from app.services.permissions import Capability

router = APIRouter(prefix="/questions", tags=["questions"])


def _get_question_or_404(db: Session, question_id: int) -> Question:
    question = db.get(Question, question_id)
    if question is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Question not found")
    return question


@router.post("", response_model=QuestionOut, status_code=status.HTTP_201_CREATED)
def submit_question(
    payload: QuestionCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> QuestionOut:
    masjid = get_masjid_or_404(db, payload.masjid_id)
    recipient: Recipient | None = None
    if user is not None or (payload.device_id and payload.platform):
        recipient = resolve_recipient(user, payload.device_id, payload.platform, payload.app_version)
    question = question_service.submit_question(
        db,
        masjid,
        recipient=recipient,
        user_name=payload.user_name.strip(),
        user_email=payload.user_email,
        title=payload.title.strip(),
        question=payload.question.strip(),
    )
    background_tasks.add_task(dispatcher.question_created, question.id)
    return QuestionOut.from_orm(question)


@router.get("/mine", response_model=list[QuestionOut], status_code=status.HTTP_200_OK)
def my_questions(
    device: DeviceIdentity = Depends(get_device_identity),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> list[QuestionOut]:
    recipient = resolve_recipient(user, device.device_id, device.platform, device.app_version)
    return [QuestionOut.from_orm(item) for item in question_service.questions_for_recipient(db, recipient)]


@router.get("/masjid/{masjid_id}", response_model=QuestionListResponse, status_code=status.HTTP_200_OK)
def list_masjid_questions(
    *,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    question_status: QuestionStatus | None = Query(None, alias="status"),
    masjid: Masjid = Depends(require_masjid_permission(Capability.VIEW_QUESTIONS)),
    db: Session = Depends(get_db),
) -> QuestionListResponse:
    query = db.query(Question).filter(Question.masjid_id == masjid.id)
    if question_status:
        query = query.filter(Question.status == question_status)
    total = query.count()
    items = (
        query.order_by(Question.created_at.desc(), Question.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return QuestionListResponse(
        items=[QuestionOut.from_orm(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/masjid/{masjid_id}/statistics", response_model=QuestionStatistics, status_code=status.HTTP_200_OK)
def masjid_question_statistics(
    masjid: Masjid = Depends(require_masjid_permission(Capability.VIEW_QUESTIONS)),
    db: Session = Depends(get_db),
) -> QuestionStatistics:
    return QuestionStatistics(**question_service.question_statistics(db, masjid.id))


@router.get("/{question_id}", response_model=QuestionOut, status_code=status.HTTP_200_OK)
def get_question(
    question_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> QuestionOut:
    question = _get_question_or_404(db, question_id)
    if question.user_id != user.id:
        permissions.ensure_permission(db, user, question.masjid_id, Capability.VIEW_QUESTIONS)
    return QuestionOut.from_orm(question)


@router.put("/{question_id}/reply", response_model=QuestionOut, status_code=status.HTTP_200_OK)
def reply_to_question(
    question_id: int,
    payload: QuestionReply,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> QuestionOut:
    question = _get_question_or_404(db, question_id)
    permissions.ensure_permission(db, user, question.masjid_id, Capability.ANSWER_QUESTIONS)
    question = question_service.reply_to_question(db, user, question, payload.reply)
    background_tasks.add_task(dispatcher.question_replied, question.id)
    return QuestionOut.from_orm(question)

"""Comment endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_db
from ..services import social

router = APIRouter(prefix="/api/comments", tags=["Comments"])


@router.post("/{comment_id}/like", response_model=schemas.CommentLikeStatus)
def toggle_comment_like(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CommentLikeStatus:
    return social.toggle_comment_like(db, current_user.id, comment_id)


@router.delete("/{comment_id}", response_model=schemas.SuccessResponse)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.SuccessResponse:
    """Delete one of your own comments."""
    social.delete_comment(db, comment_id, current_user.id)
    return schemas.SuccessResponse(message="Comment deleted")

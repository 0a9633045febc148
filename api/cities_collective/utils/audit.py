"""Audit logging utility for admin actions."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .. import models

logger = logging.getLogger(__name__)


def log_admin_action(
    db: Session,
    actor_id: int,
    action: str,
    target_type: str | None = None,
    target_id: int | str | None = None,
    note: str | None = None,
) -> models.AuditLog:
    """
    Log an admin action to the audit log.

    Args:
        db: Database session
        actor_id: ID of the admin performing the action
        action: Action name (e.g., "delete_city", "toggle_admin", "delete_comment")
        target_type: Type of target (e.g., "user", "city", "comment", "api_key")
        target_id: ID of the target entity
        note: Additional context about the action

    Returns:
        The created AuditLog entry
    """
    audit_entry = models.AuditLog(
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        note=note,
    )
    db.add(audit_entry)
    db.commit()
    db.refresh(audit_entry)
    logger.info(f"Admin {actor_id} performed {action} on {target_type}:{target_id}")
    return audit_entry


def get_recent_admin_actions(db: Session, limit: int = 50) -> list[models.AuditLog]:
    return (
        db.query(models.AuditLog)
        .order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc())
        .limit(limit)
        .all()
    )

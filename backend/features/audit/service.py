"""
Admin audit trail.

Every administrator write (catalog replace, plan override, trial start/end,
trial fee checkout) leaves one row in admin_audit with the actor identity.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select

from backend.core.admin_auth import AdminActor
from backend.core.database import admin_audit, get_db_session

logger = logging.getLogger("confera")


def actor_label(actor: AdminActor) -> str:
    if actor.actor_email:
        return f"{actor.actor_type}:{actor.actor_id} ({actor.actor_email})"
    return f"{actor.actor_type}:{actor.actor_id}"


def record_admin_audit(
    actor: AdminActor,
    action: str,
    target_user_id: Optional[str] = None,
    target_resource: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    session=None,
) -> None:
    """
    Record an admin action in the audit log.

    Args:
        actor: Authenticated admin
        action: Action name (e.g., "set_catalog", "set_user_plan")
        target_user_id: User affected by action (optional)
        target_resource: Resource affected (plan name, reference, ...)
        payload: Additional context as dict (JSON-serialized)
        session: Write inside an existing transaction instead of a new one
    """
    values = dict(
        actor=actor_label(actor),
        action=action,
        target_user_id=target_user_id,
        target_resource=target_resource,
        payload_json=json.dumps(payload, default=str) if payload else None,
    )
    if session is not None:
        session.execute(insert(admin_audit).values(**values))
    else:
        with get_db_session() as s:
            s.execute(insert(admin_audit).values(**values))

    logger.info("[admin] audit", extra={"action": action, "actor": values["actor"], "target_user_id": target_user_id})


def list_admin_audit(action: Optional[str] = None, target_user_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    """Most recent audit rows first."""
    stmt = select(admin_audit).order_by(admin_audit.c.id.desc()).limit(limit)
    if action:
        stmt = stmt.where(admin_audit.c.action == action)
    if target_user_id:
        stmt = stmt.where(admin_audit.c.target_user_id == target_user_id)

    with get_db_session() as session:
        rows = session.execute(stmt).fetchall()

    return [
        {
            "id": row.id,
            "actor": row.actor,
            "action": row.action,
            "target_user_id": row.target_user_id,
            "target_resource": row.target_resource,
            "payload": json.loads(row.payload_json) if row.payload_json else None,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]

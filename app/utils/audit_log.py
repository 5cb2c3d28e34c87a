import json
import logging
from typing import Any, Dict, Optional

from app import database
from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def validate_values(values: Optional[Dict[str, Any]]) -> None:
    """
    Validate that audit values are JSON-serializable.
    Raise an exception if invalid.
    """
    if values:
        try:
            json.dumps(values)
        except TypeError as e:
            logger.error(f"Audit values validation failed. Non-serializable data: {values}")
            raise ValueError(f"Audit values must be JSON-serializable. Error: {e}") from e


async def log_audit(
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    user_id: Optional[str] = None,
    new_values: Optional[Dict[str, Any]] = None,
    old_values: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> bool:
    """
    Append an audit entry using a separate session.

    Audit logging is best-effort: failures are logged and reported through
    the return value, never raised.
    """
    try:
        validate_values(new_values)
        validate_values(old_values)

        async with database.AsyncSessionLocal() as session:
            session.add(
                AuditLog(
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    user_id=user_id,
                    old_values=old_values,
                    new_values=new_values,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
            await session.commit()
        return True

    except Exception as e:
        logger.error(f"Failed to write audit log for {entity_type} {entity_id} ({action}): {str(e)}")
        return False

"""
Audit Service

Records trip, stop and invoice events in the audit trail. Entries are added
to the caller's session and committed with the surrounding transaction.
"""

from typing import Optional, Dict, Any
import logging
import json
from flask import request, has_request_context, g
from models import db, AuditLog

logger = logging.getLogger(__name__)

class AuditService:
    """Service class for centralized audit logging"""

    @staticmethod
    def log_action(action: str,
                  entity_type: Optional[str] = None,
                  entity_id: Optional[int] = None,
                  details: Optional[Dict[str, Any]] = None,
                  user_id: Optional[int] = None) -> AuditLog:
        """
        Log an audit event with request context when one is available.

        Args:
            action: Action performed (e.g., 'create_trip', 'generate_invoice')
            entity_type: Type of entity affected (e.g., 'trip', 'invoice')
            entity_id: ID of the affected entity
            details: Additional details about the action
            user_id: ID of the acting user, None for system actions

        Returns:
            AuditLog: the pending audit record
        """
        audit = AuditLog()
        audit.user_id = user_id
        audit.action = action
        audit.entity_type = entity_type
        audit.entity_id = entity_id
        if has_request_context():
            audit.ip_address = request.remote_addr
            audit.user_agent = request.headers.get('User-Agent', '')[:255]
            # Add correlation ID if available
            correlation_id = getattr(g, 'correlation_id', None)
            if correlation_id:
                details = dict(details or {}, correlation_id=correlation_id)

        audit.new_values = json.dumps(details, default=str) if details else None

        db.session.add(audit)

        # Let outer transaction handle the commit
        logger.debug(f"Audit logged: {action} on {entity_type}:{entity_id}")
        return audit


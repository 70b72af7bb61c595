import json
import logging

from models.logs import OperationLog

ACTION_TABLE_CREATE = "table_create"
ACTION_TABLE_RENAME = "table_rename"
ACTION_TABLE_DEACTIVATE = "table_deactivate"

logger = logging.getLogger("tavoli.audit")


def add_operation_log(session, *, actor_id: str | None, action: str, table_id: int | None = None, **detail):
    """Stage an audit row in ``session``; it commits with the caller's change."""
    # 脚本等内部调用没有操作人，不记录
    if not actor_id:
        return None
    log = OperationLog(
        actor_id=actor_id,
        action=action,
        table_id=table_id,
        detail=json.dumps(detail, ensure_ascii=False, default=str) if detail else None,
    )
    session.add(log)
    logger.debug("operation staged action=%s table=%s actor=%s", action, table_id, actor_id)
    return log

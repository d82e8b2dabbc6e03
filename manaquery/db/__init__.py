from manaquery.db.database import get_session, init_db
from manaquery.db.operations import (
    append_translation_log,
    claim_feedback,
    create_feedback,
    create_rule,
    feedback_to_model,
    feedback_to_response,
    get_feedback,
    list_active_rules,
    list_feedback,
    list_rules,
    rule_to_model,
    rule_to_response,
    set_rule_active,
    sweep_expired_cache,
    transition_feedback,
    upsert_cache_row,
)

__all__ = [
    "append_translation_log",
    "claim_feedback",
    "create_feedback",
    "create_rule",
    "feedback_to_model",
    "feedback_to_response",
    "get_feedback",
    "get_session",
    "init_db",
    "list_active_rules",
    "list_feedback",
    "list_rules",
    "rule_to_model",
    "rule_to_response",
    "set_rule_active",
    "sweep_expired_cache",
    "transition_feedback",
    "upsert_cache_row",
]

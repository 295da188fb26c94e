from studypack.crud.users import create_user, get_user, get_user_by_email, list_user_ids
from studypack.crud.study_sets import create_study_set, delete_study_set
from studypack.crud.items import (
    get_due_items,
    get_items_by_topics,
    get_unreviewed_items,
    get_item_for_update,
    persist_item_state,
    get_items_due_between
)
from studypack.crud.responses import append_response, query_responses, list_responding_user_ids
from studypack.crud.topic_performance import (
    get_topic_performance,
    increment_attempts,
    upsert_accuracy,
    get_top_topics
)
from studypack.crud.study_sessions import (
    create_study_session,
    find_open_session,
    get_session,
    update_session_status,
    record_session_answer,
    get_study_sessions
)
from studypack.crud.notifications import create_notification, mark_notification, get_notifications

__all__ = [
    "create_user",
    "get_user",
    "get_user_by_email",
    "list_user_ids",
    "create_study_set",
    "delete_study_set",
    "get_due_items",
    "get_items_by_topics",
    "get_unreviewed_items",
    "get_item_for_update",
    "persist_item_state",
    "get_items_due_between",
    "append_response",
    "query_responses",
    "list_responding_user_ids",
    "get_topic_performance",
    "increment_attempts",
    "upsert_accuracy",
    "get_top_topics",
    "create_study_session",
    "find_open_session",
    "get_session",
    "update_session_status",
    "record_session_answer",
    "get_study_sessions",
    "create_notification",
    "mark_notification",
    "get_notifications",
]

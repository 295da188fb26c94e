from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload, selectinload
from studypack.errors import NotFoundError, ValidationError
from studypack.models import ITEM_MODELS, StudySet, StudySetTopic
from studypack.schemas import ReviewItem
from datetime import datetime
from typing import List, Optional, Sequence

def item_model(item_type: str):
    """ORM class for an item type string"""
    try:
        return ITEM_MODELS[item_type]
    except KeyError:
        raise ValidationError(f"item_type must be 'flashcard' or 'mcq', got {item_type!r}") from None

def _item_types(item_type: str) -> List[str]:
    if item_type == "both":
        return list(ITEM_MODELS)
    item_model(item_type)
    return [item_type]

def _with_topics(query, model):
    return query.options(joinedload(model.study_set).selectinload(StudySet.topic_rows))

def to_review_item(row) -> ReviewItem:
    """Convert a Flashcard or MCQ row to its review state"""
    return ReviewItem(
        item_id=row.id,
        item_type=row.item_type,
        study_set_id=row.study_set_id,
        difficulty=row.difficulty,
        interval_days=row.interval_days,
        ease_factor=row.ease_factor,
        due_at=row.due_at,
        last_reviewed_at=row.last_reviewed_at,
        review_count=row.review_count,
        created_at=row.created_at,
        topics=row.study_set.topics if row.study_set is not None else [],
    )

def get_due_items(db: Session, user_id: int, item_type: str, limit: int, as_of: datetime) -> List[ReviewItem]:
    """Items due at as_of, earliest due first, harder first among equally due"""
    items = []
    for name in _item_types(item_type):
        model = item_model(name)
        query = db.query(model).join(StudySet).filter(
            StudySet.user_id == user_id,
            model.due_at <= as_of
        ).order_by(model.due_at.asc(), model.difficulty.desc(), model.id.asc()).limit(limit)
        items.extend(to_review_item(row) for row in _with_topics(query, model).all())
    
    items.sort(key=lambda item: (item.due_at, -item.difficulty))
    return items[:limit]

def _with_ties(query, key_column, limit: int) -> list:
    """
    First limit rows of an ordered query, plus every further row that ties
    with the last one on key_column, so a caller breaking ties at random is
    not biased towards the id order used to cut the pool.
    """
    rows = query.limit(limit).all()
    if limit <= 0 or len(rows) < limit:
        return rows
    boundary = getattr(rows[-1], key_column.key)
    seen = {row.id for row in rows}
    rows.extend(row for row in query.filter(key_column == boundary).all() if row.id not in seen)
    return rows

def get_items_by_topics(db: Session, user_id: int, topics: Sequence[str], item_type: str, limit: int) -> List[ReviewItem]:
    """
    Items whose study set is tagged with any of the topics, hardest first.

    At least limit items per type when available; items tied on difficulty
    with the last one are all included.
    """
    if not topics:
        raise ValidationError("topics must not be empty")

    tagged_sets = select(StudySetTopic.study_set_id).where(StudySetTopic.topic.in_(list(topics)))
    items = []
    for name in _item_types(item_type):
        model = item_model(name)
        query = db.query(model).join(StudySet).filter(
            StudySet.user_id == user_id,
            model.study_set_id.in_(tagged_sets)
        ).order_by(model.difficulty.desc(), model.id.asc())
        items.extend(to_review_item(row) for row in _with_ties(_with_topics(query, model), model.difficulty, limit))
    return items

def get_unreviewed_items(db: Session, user_id: int, item_type: str, limit: int) -> List[ReviewItem]:
    """Never reviewed items, newest first; ties on created_at with the last one are all included"""
    items = []
    for name in _item_types(item_type):
        model = item_model(name)
        query = db.query(model).join(StudySet).filter(
            StudySet.user_id == user_id,
            model.review_count == 0
        ).order_by(model.created_at.desc(), model.id.desc())
        items.extend(to_review_item(row) for row in _with_ties(_with_topics(query, model), model.created_at, limit))
    return items

def get_item_for_update(db: Session, item_id: int, item_type: str, user_id: Optional[int] = None):
    """
    Load an item row with a row lock held until the transaction ends.

    With user_id, items of other users are reported as missing.
    """
    model = item_model(item_type)
    query = db.query(model).filter(model.id == item_id)
    if user_id is not None:
        query = query.join(StudySet).filter(StudySet.user_id == user_id)
    row = _with_topics(query, model).with_for_update(of=model).first()
    if row is None:
        raise NotFoundError(item_type, item_id)
    return row

def apply_item_state(row, state: ReviewItem) -> None:
    row.difficulty = state.difficulty
    row.interval_days = state.interval_days
    row.ease_factor = state.ease_factor
    row.due_at = state.due_at
    row.last_reviewed_at = state.last_reviewed_at
    row.review_count = state.review_count

def compare_and_set_item_state(db: Session, item_id: int, item_type: str, expected_review_count: int, state: ReviewItem) -> bool:
    """
    Write state only while the stored review_count still equals
    expected_review_count. Returns False, writing nothing, when another
    answer was applied first.
    """
    model = item_model(item_type)
    matched = db.query(model).filter(
        model.id == item_id,
        model.review_count == expected_review_count
    ).update({
        model.difficulty: state.difficulty,
        model.interval_days: state.interval_days,
        model.ease_factor: state.ease_factor,
        model.due_at: state.due_at,
        model.last_reviewed_at: state.last_reviewed_at,
        model.review_count: state.review_count,
    }, synchronize_session=False)
    return matched == 1

def persist_item_state(db: Session, item_id: int, item_type: str, state: ReviewItem) -> None:
    row = get_item_for_update(db, item_id, item_type)
    apply_item_state(row, state)
    db.commit()

def get_items_due_between(db: Session, user_id: int, start: datetime, end: datetime) -> List[ReviewItem]:
    """Items falling due in [start, end); used by the schedule preview"""
    items = []
    for name in ITEM_MODELS:
        model = item_model(name)
        query = db.query(model).join(StudySet).filter(
            StudySet.user_id == user_id,
            model.due_at >= start,
            model.due_at < end
        ).order_by(model.due_at.asc())
        items.extend(to_review_item(row) for row in _with_topics(query, model).all())
    return items

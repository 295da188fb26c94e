from studypack.models.user import User
from studypack.models.study_set import StudySet, StudySetTopic
from studypack.models.review_item import Flashcard, MCQ, ITEM_MODELS
from studypack.models.user_response import UserResponse
from studypack.models.topic_performance import TopicPerformance
from studypack.models.study_session import StudySession
from studypack.models.notification import Notification

__all__ = [
    "User",
    "StudySet",
    "StudySetTopic",
    "Flashcard",
    "MCQ",
    "ITEM_MODELS",
    "UserResponse",
    "TopicPerformance",
    "StudySession",
    "Notification",
]

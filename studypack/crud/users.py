from sqlalchemy.orm import Session
from studypack.models import User
from studypack.schemas import UserCreate
from typing import List, Optional

def create_user(db: Session, user: UserCreate) -> User:
    """Create a new learner account"""
    db_user = User(**user.model_dump())
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def get_user(db: Session, user_id: int) -> Optional[User]:
    """Get user by ID"""
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()

def list_user_ids(db: Session) -> List[int]:
    """IDs of every user, oldest account first"""
    return [row.id for row in db.query(User.id).order_by(User.id).all()]

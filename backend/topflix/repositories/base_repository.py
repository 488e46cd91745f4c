from typing import Generic, TypeVar, Type, Optional
from sqlalchemy.orm import Session, Query
from topflix.db import Base

ModelType = TypeVar("ModelType", bound=Base)

class BaseRepository(Generic[ModelType]):
    """Base repository with common read helpers"""

    def __init__(self, model: Type[ModelType], db: Session):
        self.model = model
        self.db = db

    def query(self) -> Query:
        """Query over the repository model"""
        return self.db.query(self.model)

    def filter_one_by(self, **kwargs) -> Optional[ModelType]:
        """Filter by multiple conditions and return first"""
        return self.query().filter_by(**kwargs).first()

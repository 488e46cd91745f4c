from topflix.db import Base
from .content import Content, AppearanceHistory

__all__ = [
    'Base', 'Content', 'AppearanceHistory'
]

"""Database models"""

from app.models.git_repo import GitRepo
from app.models.translation_cache import TranslationCache

__all__ = [
    "GitRepo",
    "TranslationCache",
]

"""Translation cache model (append-only)"""

from datetime import datetime
import hashlib

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from app.config.database import Base


def hash_original_text(text: str) -> str:
    """Stable lookup key for arbitrarily long source text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TranslationCache(Base):
    """Original text -> translated text, never overwritten."""

    __tablename__ = "translation_cache"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    original_hash = Column(String(64), nullable=False, index=True)
    original_text = Column(Text, nullable=False)
    translated_text = Column(Text, nullable=False)
    source = Column(String(50), nullable=False, default="ai_model")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<TranslationCache {self.original_text[:30]!r}>"

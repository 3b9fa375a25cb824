"""Translation cache backed by the translation_cache table"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.database import SessionLocal
from app.models.translation_cache import TranslationCache, hash_original_text
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)


class TranslationCacheService:
    """
    Lookup and append of translated text

    Each call uses its own short-lived session so that a cache failure can
    never leave the caller's session in a failed transaction. Read failures
    behave as a miss and write failures are logged and swallowed.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, source: str = "ai_model"):
        self.session_factory = session_factory
        self.source = source

    def get(self, original_text: str) -> Optional[str]:
        if not original_text:
            return None

        db = self.session_factory()
        try:
            row = (
                db.query(TranslationCache)
                .filter(
                    TranslationCache.original_hash == hash_original_text(original_text),
                    TranslationCache.original_text == original_text,
                )
                .order_by(TranslationCache.id.desc())
                .first()
            )
            return row.translated_text if row else None
        except SQLAlchemyError as e:
            logger.warning(
                "Translation cache lookup failed, treating as miss",
                extra=sanitize_log_extra(error=str(e), text_chars=len(original_text)),
            )
            return None
        finally:
            db.close()

    def put(self, original_text: str, translated_text: str) -> None:
        if not original_text or not translated_text:
            return

        db = self.session_factory()
        try:
            db.add(
                TranslationCache(
                    original_hash=hash_original_text(original_text),
                    original_text=original_text,
                    translated_text=translated_text,
                    source=self.source,
                )
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning(
                "Failed to write translation cache",
                extra=sanitize_log_extra(error=str(e), text_chars=len(original_text)),
            )
        finally:
            db.close()

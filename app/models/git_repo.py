"""GitRepo model for enriched GitHub trending repositories"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.config.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class GitRepo(Base):
    """
    One row per canonical repository URL

    Created on the first successful enrichment of a new URL and updated in
    place on later runs. The crawler never deletes rows.
    """
    __tablename__ = "git_repos"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    url = Column(String(500), nullable=False, unique=True, index=True)  # canonical, lower-cased
    github_id = Column(BigInteger, nullable=True)

    # Identity
    owner = Column(String(200), nullable=False)
    name = Column(String(200), nullable=False)
    full_name = Column(String(400), nullable=False)
    html_url = Column(String(500), nullable=True)
    homepage = Column(String(500), nullable=True)

    # Description and AI enrichment
    description = Column(Text, nullable=True)
    description_translated = Column(Text, nullable=True)
    project_summary = Column(Text, nullable=True)
    business_analysis = Column(JSONType, nullable=True)
    overall_score = Column(Float, nullable=True)

    # Repository metadata
    language = Column(String(100), nullable=True)
    stars = Column(Integer, nullable=False, default=0)
    forks = Column(Integer, nullable=False, default=0)
    watchers = Column(Integer, nullable=False, default=0)
    open_issues = Column(Integer, nullable=False, default=0)
    size_kb = Column(Integer, nullable=False, default=0)
    stars_in_period = Column(Integer, nullable=True)
    topics = Column(JSONType, nullable=True)
    license = Column(String(200), nullable=True)
    is_fork = Column(Boolean, nullable=False, default=False)
    default_branch = Column(String(200), nullable=True)
    preview_image = Column(String(1000), nullable=True)

    # Trending bucket that produced the row (daily/weekly/monthly)
    trending_period = Column(String(20), nullable=True)

    # Source timestamps
    repo_created_at = Column(DateTime, nullable=True)
    repo_updated_at = Column(DateTime, nullable=True)
    repo_pushed_at = Column(DateTime, nullable=True)

    # Bookkeeping (first collected / last updated)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_git_repos_overall_score", "overall_score"),
        Index("idx_git_repos_trending_period", "trending_period"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "github_id": self.github_id,
            "owner": self.owner,
            "name": self.name,
            "full_name": self.full_name,
            "html_url": self.html_url,
            "homepage": self.homepage,
            "description": self.description,
            "description_translated": self.description_translated,
            "project_summary": self.project_summary,
            "business_analysis": self.business_analysis,
            "overall_score": self.overall_score,
            "language": self.language,
            "stars": self.stars,
            "forks": self.forks,
            "watchers": self.watchers,
            "open_issues": self.open_issues,
            "size_kb": self.size_kb,
            "stars_in_period": self.stars_in_period,
            "topics": list(self.topics or []),
            "license": self.license,
            "is_fork": self.is_fork,
            "default_branch": self.default_branch,
            "preview_image": self.preview_image,
            "trending_period": self.trending_period,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<GitRepo {self.full_name} ({self.stars} stars, score={self.overall_score})>"

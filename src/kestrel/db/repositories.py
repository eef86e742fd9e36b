from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import and_, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kestrel.db.models import Application, CandidateProfile, Company, EmbeddingCacheEntry

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class Repository:
    def __init__(self, session: Session):
        self.session = session

    def get_profile(self, owner_id: str) -> CandidateProfile | None:
        return self.session.scalar(select(CandidateProfile).where(CandidateProfile.owner_id == owner_id))

    def save_profile(self, owner_id: str, *, resume_text: str, persona_text: str) -> CandidateProfile:
        existing = self.get_profile(owner_id)
        if existing:
            existing.resume_text = resume_text
            existing.persona_text = persona_text
            obj = existing
        else:
            obj = CandidateProfile(owner_id=owner_id, resume_text=resume_text, persona_text=persona_text)
            self.session.add(obj)

        self.session.commit()
        self.session.refresh(obj)
        return obj

    def get_embedding(self, model: str, text_hash: str) -> list[float] | None:
        statement = select(EmbeddingCacheEntry.embedding).where(
            and_(
                EmbeddingCacheEntry.model == model,
                EmbeddingCacheEntry.text_hash == text_hash,
            )
        )
        return self.session.scalar(statement)

    def upsert_embedding(
        self,
        *,
        model: str,
        text_hash: str,
        normalized_text: str,
        embedding: list[float],
    ) -> None:
        """Insert or overwrite the cache row for ``(model, text_hash)``.

        Concurrent writers on the same key never raise: the last write wins.
        """
        values = {
            "model": model,
            "text_hash": text_hash,
            "normalized_text": normalized_text,
            "embedding": list(embedding),
        }
        insert = _UPSERT_DIALECTS.get(self.session.get_bind().dialect.name)
        if insert is None:
            self._upsert_embedding_portable(values)
            return

        statement = insert(EmbeddingCacheEntry).values(**values)
        statement = statement.on_conflict_do_update(
            index_elements=["model", "text_hash"],
            set_={
                "normalized_text": statement.excluded.normalized_text,
                "embedding": statement.excluded.embedding,
                "updated_at": datetime.now(UTC),
            },
        )
        self.session.execute(statement)
        self.session.commit()

    def _upsert_embedding_portable(self, values: dict) -> None:
        try:
            self.session.add(EmbeddingCacheEntry(**values))
            self.session.commit()
            return
        except IntegrityError:
            self.session.rollback()

        existing = self.session.scalar(
            select(EmbeddingCacheEntry).where(
                and_(
                    EmbeddingCacheEntry.model == values["model"],
                    EmbeddingCacheEntry.text_hash == values["text_hash"],
                )
            )
        )
        if existing is None:
            raise ValueError(f"embedding row {values['model']}/{values['text_hash']} vanished during upsert")
        existing.normalized_text = values["normalized_text"]
        existing.embedding = values["embedding"]
        self.session.commit()

    def count_embeddings(self, model: str | None = None) -> int:
        statement = select(func.count()).select_from(EmbeddingCacheEntry)
        if model is not None:
            statement = statement.where(EmbeddingCacheEntry.model == model)
        return int(self.session.scalar(statement) or 0)

    def get_company(self, owner_id: str, url: str) -> Company | None:
        statement = select(Company).where(and_(Company.owner_id == owner_id, Company.url == url))
        return self.session.scalar(statement)

    def company_exists(self, owner_id: str, url: str) -> bool:
        return self.get_company(owner_id, url) is not None

    def record_company(self, *, owner_id: str, url: str, name: str, status: str = "visited") -> Company | None:
        """Insert a company; returns ``None`` if the owner already has it."""
        company = Company(owner_id=owner_id, url=url, name=name, status=status)
        self.session.add(company)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info("Company already recorded owner=%s url=%s", owner_id, url)
            return None
        self.session.refresh(company)
        return company

    def update_company_status(self, owner_id: str, url: str, status: str) -> Company:
        company = self.get_company(owner_id, url)
        if not company:
            raise ValueError(f"company {url} not found for owner {owner_id}")
        company.status = status
        self.session.commit()
        self.session.refresh(company)
        return company

    def list_companies(self, owner_id: str, limit: int = 200) -> list[Company]:
        statement = (
            select(Company)
            .where(Company.owner_id == owner_id)
            .order_by(Company.visited_at.desc(), Company.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(statement).all())

    def get_application(self, owner_id: str, job_url: str) -> Application | None:
        statement = select(Application).where(
            and_(Application.owner_id == owner_id, Application.job_url == job_url)
        )
        return self.session.scalar(statement)

    def application_exists(self, owner_id: str, job_url: str) -> bool:
        return self.get_application(owner_id, job_url) is not None

    def record_application(
        self,
        *,
        owner_id: str,
        job_title: str,
        company_name: str,
        job_url: str,
        status: str,
        cover_letter: str = "",
        match_score: int | None = None,
        skip_reason: str = "",
    ) -> Application | None:
        """Insert the terminal outcome for a job; returns ``None`` if one already exists."""
        application = Application(
            owner_id=owner_id,
            job_title=job_title,
            company_name=company_name,
            job_url=job_url,
            cover_letter=cover_letter,
            status=status,
            match_score=match_score,
            skip_reason=skip_reason,
        )
        self.session.add(application)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info("Application already recorded owner=%s job_url=%s", owner_id, job_url)
            return None
        self.session.refresh(application)
        return application

    def list_applications(self, owner_id: str, limit: int = 200) -> list[Application]:
        statement = (
            select(Application)
            .where(Application.owner_id == owner_id)
            .order_by(Application.applied_at.desc(), Application.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(statement).all())

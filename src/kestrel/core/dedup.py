from __future__ import annotations

from kestrel.db.repositories import Repository


class DedupLedger:
    """Advisory "seen before" checks per owner.

    These never reserve anything. The unique constraints on companies and
    applications decide; ``Repository.record_*`` returns ``None`` when a
    concurrent run got there first.
    """

    def __init__(self, repo: Repository):
        self.repo = repo

    def is_new_company(self, owner_id: str, url: str) -> bool:
        return not self.repo.company_exists(owner_id, url)

    def is_new_job(self, owner_id: str, job_url: str) -> bool:
        return not self.repo.application_exists(owner_id, job_url)

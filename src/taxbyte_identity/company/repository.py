"""
Company repository for TaxByte.

Only the operations the Drive connection needs: lookup, membership roles
and the OAuth token fields.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from ..auth.models import utcnow
from ..utils.errors import CompanyNotFound
from ..utils.tables import DirectoryTables, MemoryTables, TableBackend
from .models import Company

logger = logging.getLogger(__name__)

COMPANIES_TABLE = "companies"


class CompanyRepository(ABC):
    """Abstract base class for company storage."""

    @abstractmethod
    def save(self, company: Company) -> None:
        """Insert or replace a company."""
        pass

    @abstractmethod
    def get(self, company_id: UUID) -> Optional[Company]:
        pass

    @abstractmethod
    def update_oauth_tokens(
        self,
        company_id: UUID,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        connected_by: Optional[UUID] = None,
        connected_at: Optional[datetime] = None,
    ) -> Company:
        """
        Write encrypted tokens onto a company.

        ``connected_by``/``connected_at`` are only overwritten when given,
        so a refresh keeps the existing connection metadata.

        Raises:
            CompanyNotFound: If the company does not exist.
        """
        pass

    @abstractmethod
    def clear_oauth_tokens(self, company_id: UUID) -> Company:
        """
        Remove every OAuth field from a company.

        Raises:
            CompanyNotFound: If the company does not exist.
        """
        pass


class TableCompanyRepository(CompanyRepository):
    """Company repository built on a table backend, keyed by company id."""

    def __init__(self, backend: TableBackend) -> None:
        self._backend = backend

    def save(self, company: Company) -> None:
        with self._backend.lock:
            companies = self._backend.load(COMPANIES_TABLE, {})
            companies[str(company.id)] = company.to_dict()
            self._backend.save(COMPANIES_TABLE, companies)

    def get(self, company_id: UUID) -> Optional[Company]:
        row = self._backend.load(COMPANIES_TABLE, {}).get(str(company_id))
        return Company.from_dict(row) if row else None

    def _modify(self, company_id: UUID, change) -> Company:
        with self._backend.lock:
            companies = self._backend.load(COMPANIES_TABLE, {})
            row = companies.get(str(company_id))
            if row is None:
                raise CompanyNotFound(str(company_id))
            company = Company.from_dict(row)
            change(company)
            companies[str(company_id)] = company.to_dict()
            self._backend.save(COMPANIES_TABLE, companies)
            return company

    def update_oauth_tokens(
        self,
        company_id: UUID,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        connected_by: Optional[UUID] = None,
        connected_at: Optional[datetime] = None,
    ) -> Company:
        def change(company: Company) -> None:
            company.oauth_access_token = access_token
            company.oauth_refresh_token = refresh_token
            company.oauth_token_expires_at = expires_at
            if connected_by is not None:
                company.oauth_connected_by = connected_by
            if connected_at is not None:
                company.oauth_connected_at = connected_at
            company.updated_at = utcnow()

        return self._modify(company_id, change)

    def clear_oauth_tokens(self, company_id: UUID) -> Company:
        def change(company: Company) -> None:
            company.oauth_access_token = None
            company.oauth_refresh_token = None
            company.oauth_token_expires_at = None
            company.oauth_connected_by = None
            company.oauth_connected_at = None
            company.updated_at = utcnow()

        company = self._modify(company_id, change)
        logger.info(f"Cleared OAuth tokens for company {company_id}")
        return company


class InMemoryCompanyRepository(TableCompanyRepository):
    def __init__(self) -> None:
        super().__init__(MemoryTables())


class LocalDirectoryCompanyRepository(TableCompanyRepository):
    """Company repository persisted to companies.json."""

    def __init__(self, base_dir: str) -> None:
        super().__init__(DirectoryTables(base_dir))
        self.base_dir = base_dir
        logger.info(f"LocalDirectoryCompanyRepository initialized: {base_dir}")

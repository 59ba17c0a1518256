"""Company boundary: membership roles and the Google Drive connection."""

from .drive_connection import DriveConnectionUseCases, build_drive_service
from .models import Company, CompanyRole, DriveConnectionStatus
from .repository import (
    CompanyRepository,
    InMemoryCompanyRepository,
    LocalDirectoryCompanyRepository,
)

__all__ = [
    "Company",
    "CompanyRepository",
    "CompanyRole",
    "DriveConnectionStatus",
    "DriveConnectionUseCases",
    "InMemoryCompanyRepository",
    "LocalDirectoryCompanyRepository",
    "build_drive_service",
]

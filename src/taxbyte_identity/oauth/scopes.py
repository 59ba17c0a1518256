"""
Google OAuth scopes for the TaxByte Drive connection.

Only ``drive.file`` is requested: access to files the application itself
created, which is all invoice archiving needs.
"""

from typing import List

DRIVE_FILE_SCOPE = "https://www.googleapis.com/auth/drive.file"

DEFAULT_SCOPES = [DRIVE_FILE_SCOPE]


def get_scopes(scope: str = DRIVE_FILE_SCOPE) -> List[str]:
    """
    Split a configured scope string into a list.

    Args:
        scope: Space-separated scope string from configuration.

    Returns:
        List of unique scopes, in the order given.
    """
    scopes: List[str] = []
    for item in scope.split():
        if item not in scopes:
            scopes.append(item)
    return scopes or list(DEFAULT_SCOPES)


def is_narrowest_scope(scopes: List[str]) -> bool:
    """Check that no scope beyond drive.file is requested."""
    return bool(scopes) and all(s == DRIVE_FILE_SCOPE for s in scopes)

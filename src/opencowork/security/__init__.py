"""Folder trust, path authorization and risk classification."""

from opencowork.security.path_authorizer import PathAuthorizer
from opencowork.security.paths import is_filesystem_root, is_within, normalize_path
from opencowork.security.risk import (
    is_dangerous_command,
    is_dangerous_write,
    is_safe_command,
)
from opencowork.security.trust_store import (
    AuthorizedFolder,
    GrantedPermission,
    InvalidPath,
    TrustLevel,
    TrustStore,
)

__all__ = [
    "AuthorizedFolder",
    "GrantedPermission",
    "InvalidPath",
    "PathAuthorizer",
    "TrustLevel",
    "TrustStore",
    "is_dangerous_command",
    "is_dangerous_write",
    "is_filesystem_root",
    "is_safe_command",
    "is_within",
    "normalize_path",
]

"""
Execution space naming.

space_name() is pure and injective over valid cluster names: the prefix is
fixed, so two different cluster names can never produce the same space
name. Names that would need truncation or escaping are rejected instead.
"""
import re

from .config import EXECUTION_SPACE_PREFIX
from .errors import InvalidSpaceNameError

# Namespace names must be RFC 1123 DNS labels
MAX_SPACE_NAME_LENGTH = 63
_DNS1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def space_name(cluster_name: str, prefix: str = EXECUTION_SPACE_PREFIX) -> str:
    """Return the execution space name for a member cluster."""
    if not cluster_name:
        raise InvalidSpaceNameError("cluster name is empty")

    name = f"{prefix}{cluster_name}"
    if len(name) > MAX_SPACE_NAME_LENGTH:
        raise InvalidSpaceNameError(
            f"execution space name for cluster {cluster_name!r} exceeds "
            f"{MAX_SPACE_NAME_LENGTH} characters ({len(name)})"
        )
    if not _DNS1123_LABEL.match(name):
        raise InvalidSpaceNameError(
            f"execution space name {name!r} for cluster {cluster_name!r} is not a valid DNS-1123 label"
        )
    return name

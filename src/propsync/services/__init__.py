"""Write services."""

from .membership import MembershipWriteService, StampPolicy  # noqa: F401

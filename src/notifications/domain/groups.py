"""Group addressing shared by the hub and the group publisher."""
from uuid import UUID


def user_group_name(prefix: str, recipient: UUID) -> str:
    """Group every connection of ``recipient`` joins."""
    return f"{prefix}{recipient.hex}"

"""
Ownership Index
Structural ownership checks derived from the key alone (no I/O)
"""

from typing import Iterable, Optional, Tuple

from edumatch.core.config import settings
from edumatch.core.identity import Actor, Role
from edumatch.core.locators import INSTITUTIONS_KEY_CLASS, USERS_KEY_CLASS, parse_owner


class OwnershipIndex:
    """
    Decides direct ownership of a canonical key

    ``users/{userId}/...`` belongs to that user. ``institutions/{id}/...``
    belongs to the institution, so it is compared with the actor's
    institution id rather than the user id.
    """

    def __init__(self, public_prefixes: Optional[Iterable[str]] = None):
        prefixes = settings.PUBLIC_KEY_PREFIXES if public_prefixes is None else public_prefixes
        self.public_prefixes: Tuple[str, ...] = tuple(
            prefix.strip("/") + "/" for prefix in prefixes if prefix.strip("/")
        )

    def is_owner(self, actor: Actor, key: str) -> bool:
        if not actor.is_authenticated:
            return False

        key_class, owner_id = parse_owner(key)
        if key_class == USERS_KEY_CLASS:
            return owner_id == actor.id
        if key_class == INSTITUTIONS_KEY_CLASS:
            return (
                actor.role is Role.INSTITUTION
                and actor.institution_id is not None
                and owner_id == actor.institution_id
            )
        return False

    def is_public(self, key: str) -> bool:
        return key.startswith(self.public_prefixes)

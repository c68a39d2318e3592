"""
Relationship Resolver
Indirect access to stored files through applications, profile snapshots and
message threads

Rules are evaluated in a fixed order and the first match wins:

1. applicant: application detail on one of the applicant's applications
2. applicant: own profile document (active, or frozen in an own snapshot)
3. institution: application detail on an application to its posts; a
   detail that only belongs to other institutions is a hard deny
4. institution: document listed in a snapshot of an application to its posts
5. any authenticated role, general-image mode: attachment in a thread the
   actor and the file's owner both take part in
6. admin/moderator, general-image mode: applicant or institution profile
   object
7. deny
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Optional

from edumatch.core.identity import Actor, Role
from edumatch.core.locators import INSTITUTIONS_KEY_CLASS, USERS_KEY_CLASS, parse_owner
from edumatch.core.logging import get_logger
from edumatch.services.access.models import (
    AccessDecision,
    AccessMode,
    AccessRule,
    SnapshotCandidates,
)
from edumatch.services.access.repository import AccessRepository

logger = get_logger(__name__)


async def gather_candidates(*lookups):
    """Run independent lookups concurrently; re-raise the first failure once all finish"""
    results = await asyncio.gather(*lookups, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class AccessResolver(ABC):
    """Resolution logic for one role variant"""

    # Rule reported when nothing matched
    nearest_miss: AccessRule = AccessRule.ROLE_NOT_PERMITTED

    def __init__(self, repository: AccessRepository):
        self.repository = repository

    async def resolve(self, actor: Actor, key: str, mode: AccessMode) -> AccessDecision:
        decision = await self.check_role_rules(actor, key, mode)
        if decision is not None:
            return decision

        if mode is AccessMode.GENERAL_IMAGE:
            decision = await self.check_thread_attachment(actor, key)
            if decision is not None:
                return decision

        decision = await self.check_fallback(actor, key, mode)
        if decision is not None:
            return decision

        return AccessDecision.deny(self.miss_for(actor), key)

    def miss_for(self, actor: Actor) -> AccessRule:
        """Rule reported when nothing matched"""
        return self.nearest_miss

    @abstractmethod
    async def check_role_rules(
        self, actor: Actor, key: str, mode: AccessMode
    ) -> Optional[AccessDecision]:
        """Role-specific rules; None when none of them matched"""

    async def check_thread_attachment(self, actor: Actor, key: str) -> Optional[AccessDecision]:
        """
        Allow the two participants of the thread the file was sent in

        A thread between the users is not enough on its own: the key must be
        an attachment of a message in that thread, and the file's nominal
        owner must be one of its participants.
        """
        key_class, owner_id = parse_owner(key)
        attachments = await self.repository.find_message_attachments(key)

        for attachment in attachments:
            if attachment.storage_key is not None and attachment.storage_key != key:
                continue
            participants = set(attachment.participants)
            nominal_owner = owner_id if key_class == USERS_KEY_CLASS else attachment.sender_id
            if actor.id in participants and nominal_owner in participants:
                logger.debug(
                    f"Thread attachment match: message {attachment.message_id} in box {attachment.box_id}"
                )
                return AccessDecision.allow(AccessRule.THREAD_ATTACHMENT, key)

        return None

    async def check_fallback(
        self, actor: Actor, key: str, mode: AccessMode
    ) -> Optional[AccessDecision]:
        return None


class ApplicantResolver(AccessResolver):
    """Applicants reach their own application uploads and profile documents"""

    nearest_miss = AccessRule.APPLICANT_DOCUMENT

    def miss_for(self, actor: Actor) -> AccessRule:
        if not actor.applicant_id:
            return AccessRule.MISSING_PROFILE
        return self.nearest_miss

    async def check_role_rules(
        self, actor: Actor, key: str, mode: AccessMode
    ) -> Optional[AccessDecision]:
        if not actor.applicant_id:
            return None

        details = await self.repository.find_applicant_application_details(actor.applicant_id, key)
        if any(detail.applicant_id == actor.applicant_id for detail in details):
            return AccessDecision.allow(AccessRule.APPLICANT_APPLICATION_DETAIL, key)

        documents = [
            document
            for document in await self.repository.find_applicant_documents(actor.applicant_id, key)
            if document.applicant_id == actor.applicant_id
        ]
        if not documents:
            return None

        if any(document.active for document in documents):
            return AccessDecision.allow(AccessRule.APPLICANT_DOCUMENT, key)

        # Soft-deleted documents stay readable while an own snapshot lists them
        snapshots = await self.repository.find_applicant_snapshots(actor.applicant_id)
        document_ids = {document.document_id for document in documents}
        for snapshot in snapshots:
            if snapshot.applicant_id == actor.applicant_id and document_ids.intersection(
                snapshot.document_ids
            ):
                return AccessDecision.allow(AccessRule.APPLICANT_DOCUMENT, key)

        return None


class InstitutionResolver(AccessResolver):
    """Institutions reach documents of applications sent to their posts"""

    nearest_miss = AccessRule.INSTITUTION_SNAPSHOT

    def miss_for(self, actor: Actor) -> AccessRule:
        if not actor.institution_id:
            return AccessRule.MISSING_PROFILE
        return self.nearest_miss

    async def check_role_rules(
        self, actor: Actor, key: str, mode: AccessMode
    ) -> Optional[AccessDecision]:
        institution_id = actor.institution_id
        if not institution_id:
            return None

        own_details, details_for_key, snapshots = await gather_candidates(
            self.repository.find_institution_application_details(institution_id, key),
            self.repository.find_application_details_by_key(key),
            self.repository.find_institution_snapshots(institution_id),
        )

        # Rule 3: application detail
        if any(detail.institution_id == institution_id for detail in own_details):
            return AccessDecision.allow(AccessRule.INSTITUTION_APPLICATION_DETAIL, key)
        if details_for_key:
            logger.warning(
                f"Institution {institution_id} requested an application upload of another institution: {key}"
            )
            return AccessDecision.deny(AccessRule.INSTITUTION_BOUNDARY, key)

        # Rule 4: snapshot membership, scoped to this institution's snapshots
        candidates = SnapshotCandidates(
            snapshots=[s for s in snapshots if s.institution_id == institution_id]
        )
        if not candidates.snapshots or not candidates.document_ids:
            return None

        documents = await self.repository.find_snapshot_documents(
            candidates.applicant_ids, candidates.document_ids, key
        )
        applicant_ids = set(candidates.applicant_ids)
        for document in documents:
            if document.applicant_id not in applicant_ids:
                continue
            for snapshot in candidates.snapshots:
                if (
                    document.document_id in snapshot.document_ids
                    and snapshot.applicant_id == document.applicant_id
                ):
                    logger.debug(
                        f"Snapshot match: document {document.document_id} in application {snapshot.application_id}"
                    )
                    return AccessDecision.allow(AccessRule.INSTITUTION_SNAPSHOT, key)

        return None


class StaffResolver(AccessResolver):
    """Admins and moderators: explicit profile-object access on the general route only"""

    nearest_miss = AccessRule.STAFF_PROFILE_ACCESS

    async def check_role_rules(
        self, actor: Actor, key: str, mode: AccessMode
    ) -> Optional[AccessDecision]:
        if mode is AccessMode.STRICT_DOCUMENT:
            return AccessDecision.deny(AccessRule.ROLE_NOT_PERMITTED, key)
        return None

    async def check_fallback(
        self, actor: Actor, key: str, mode: AccessMode
    ) -> Optional[AccessDecision]:
        if mode is not AccessMode.GENERAL_IMAGE:
            return None

        key_class, owner_id = parse_owner(key)
        if key_class == INSTITUTIONS_KEY_CLASS:
            return AccessDecision.allow(AccessRule.STAFF_PROFILE_ACCESS, key)
        if key_class == USERS_KEY_CLASS:
            owner_role = Role.parse(await self.repository.get_user_role(owner_id))
            if owner_role in (Role.APPLICANT, Role.INSTITUTION):
                return AccessDecision.allow(AccessRule.STAFF_PROFILE_ACCESS, key)
        return None


class DeniedRoleResolver(AccessResolver):
    """Roles with no grants of their own; thread attachments still apply"""

    nearest_miss = AccessRule.ROLE_NOT_PERMITTED

    async def check_role_rules(
        self, actor: Actor, key: str, mode: AccessMode
    ) -> Optional[AccessDecision]:
        if not actor.is_authenticated:
            return AccessDecision.deny(AccessRule.ROLE_NOT_PERMITTED, key)
        return None


class RelationshipResolver:
    """Dispatches to the resolver for the actor's role and fails closed"""

    def __init__(self, repository: AccessRepository):
        self.repository = repository
        staff = StaffResolver(repository)
        denied = DeniedRoleResolver(repository)
        self._resolvers: Dict[Role, AccessResolver] = {
            Role.APPLICANT: ApplicantResolver(repository),
            Role.INSTITUTION: InstitutionResolver(repository),
            Role.ADMIN: staff,
            Role.MODERATOR: staff,
            Role.UNAUTHENTICATED: denied,
            Role.UNKNOWN: denied,
        }

    async def resolve(self, actor: Actor, key: str, mode: AccessMode) -> AccessDecision:
        resolver = self._resolvers[actor.role]
        try:
            return await resolver.resolve(actor, key, mode)
        except Exception as e:
            logger.error(
                f"Relationship resolution failed for {actor.id} ({actor.role.value}) on {key}: {e}"
            )
            return AccessDecision.deny(AccessRule.UPSTREAM_FAILURE, key)

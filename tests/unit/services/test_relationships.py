#!/usr/bin/env python3
"""
Unit Tests for Relationship Resolver
Tests for edumatch/services/access/relationships.py
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from edumatch.core.exceptions import UpstreamFailureException
from edumatch.core.identity import Actor, Role
from edumatch.services.access.models import AccessMode, AccessRule
from edumatch.services.access.relationships import RelationshipResolver, gather_candidates

STRICT = AccessMode.STRICT_DOCUMENT
GENERAL = AccessMode.GENERAL_IMAGE

UPLOAD = "applications/app-1/transcript.pdf"
PROFILE_DOC = "users/u-app1/documents/cv.pdf"


@pytest.fixture
def resolver(repository):
    return RelationshipResolver(repository)


@pytest.mark.unit
class TestApplicantRules:
    """Test applicant resolution"""

    @pytest.mark.asyncio
    async def test_application_detail(self, repository, resolver, applicant):
        """Test uploads on own applications are allowed"""
        repository.add_detail(UPLOAD, applicant_id="app1", institution_id="inst1")

        decision = await resolver.resolve(applicant, UPLOAD, STRICT)

        assert decision.allowed is True
        assert decision.rule is AccessRule.APPLICANT_APPLICATION_DETAIL

    @pytest.mark.asyncio
    async def test_other_applicants_detail(self, repository, resolver, applicant):
        """Test uploads on other applicants' applications are denied"""
        repository.add_detail(UPLOAD, applicant_id="app2", institution_id="inst1")

        decision = await resolver.resolve(applicant, UPLOAD, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.APPLICANT_DOCUMENT

    @pytest.mark.asyncio
    async def test_active_profile_document(self, repository, resolver, applicant):
        """Test active profile documents are allowed"""
        repository.add_document("d1", "app1", PROFILE_DOC)

        decision = await resolver.resolve(applicant, PROFILE_DOC, STRICT)

        assert decision.allowed is True
        assert decision.rule is AccessRule.APPLICANT_DOCUMENT

    @pytest.mark.asyncio
    async def test_deleted_document_in_own_snapshot(self, repository, resolver, applicant):
        """Test soft-deleted documents stay readable while snapshotted"""
        repository.add_document("d1", "app1", PROFILE_DOC, active=False)
        repository.add_snapshot("a1", "app1", "inst1", ["d1"])

        decision = await resolver.resolve(applicant, PROFILE_DOC, STRICT)

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_deleted_document_not_snapshotted(self, repository, resolver, applicant):
        """Test soft-deleted documents without a snapshot are denied"""
        repository.add_document("d1", "app1", PROFILE_DOC, active=False)
        repository.add_snapshot("a1", "app1", "inst1", ["d2"])

        decision = await resolver.resolve(applicant, PROFILE_DOC, STRICT)

        assert decision.allowed is False

    @pytest.mark.asyncio
    async def test_missing_profile(self, resolver):
        """Test applicants without a profile row are denied"""
        actor = Actor(id="u-x", role=Role.APPLICANT)

        decision = await resolver.resolve(actor, PROFILE_DOC, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.MISSING_PROFILE


@pytest.mark.unit
class TestInstitutionRules:
    """Test institution resolution"""

    @pytest.mark.asyncio
    async def test_application_detail(self, repository, resolver, institution):
        """Test uploads on applications to own posts are allowed"""
        repository.add_detail(UPLOAD, applicant_id="app1", institution_id="inst1")

        decision = await resolver.resolve(institution, UPLOAD, STRICT)

        assert decision.allowed is True
        assert decision.rule is AccessRule.INSTITUTION_APPLICATION_DETAIL

    @pytest.mark.asyncio
    async def test_boundary_is_a_hard_deny(self, repository, resolver, institution):
        """Test another institution's upload is denied before snapshot checks"""
        repository.add_detail(UPLOAD, applicant_id="app1", institution_id="inst2")
        repository.add_document("d1", "app1", UPLOAD)
        repository.add_snapshot("a1", "app1", "inst1", ["d1"])

        decision = await resolver.resolve(institution, UPLOAD, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.INSTITUTION_BOUNDARY
        assert "find_snapshot_documents" not in repository.calls

    @pytest.mark.asyncio
    async def test_snapshot_membership(self, repository, resolver, institution):
        """Test snapshotted profile documents are allowed"""
        repository.add_document("d1", "app1", PROFILE_DOC)
        repository.add_snapshot("a1", "app1", "inst1", ["d1"])

        decision = await resolver.resolve(institution, PROFILE_DOC, STRICT)

        assert decision.allowed is True
        assert decision.rule is AccessRule.INSTITUTION_SNAPSHOT

    @pytest.mark.asyncio
    async def test_document_not_in_snapshot(self, repository, resolver, institution):
        """Test profile documents left out of the snapshot are denied"""
        repository.add_document("d1", "app1", PROFILE_DOC)
        repository.add_document("d2", "app1", "users/u-app1/documents/other.pdf")
        repository.add_snapshot("a1", "app1", "inst1", ["d2"])

        decision = await resolver.resolve(institution, PROFILE_DOC, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.INSTITUTION_SNAPSHOT

    @pytest.mark.asyncio
    async def test_snapshot_of_other_applicant(self, repository, resolver, institution):
        """Test a document id listed under a different applicant's snapshot is denied"""
        repository.add_document("d1", "app1", PROFILE_DOC)
        repository.add_snapshot("a2", "app2", "inst1", ["d1"])
        repository.add_snapshot("a3", "app1", "inst1", ["d9"])

        decision = await resolver.resolve(institution, PROFILE_DOC, STRICT)

        assert decision.allowed is False

    @pytest.mark.asyncio
    async def test_missing_profile(self, resolver):
        """Test institution users without a profile row are denied"""
        actor = Actor(id="u-x", role=Role.INSTITUTION)

        decision = await resolver.resolve(actor, PROFILE_DOC, STRICT)

        assert decision.rule is AccessRule.MISSING_PROFILE


@pytest.mark.unit
class TestThreadAttachments:
    """Test thread attachment resolution"""

    KEY = "users/u1/uploads/f1.png"

    @pytest.mark.asyncio
    async def test_participant_allowed(self, repository, resolver):
        """Test the other participant can read the attachment"""
        repository.add_attachment(self.KEY, "t1", "u1", ("u1", "u2"))
        actor = Actor(id="u2", role=Role.APPLICANT, applicant_id="app2")

        decision = await resolver.resolve(actor, self.KEY, GENERAL)

        assert decision.allowed is True
        assert decision.rule is AccessRule.THREAD_ATTACHMENT

    @pytest.mark.asyncio
    async def test_not_on_strict_route(self, repository, resolver):
        """Test attachments are not readable through the strict document route"""
        repository.add_attachment(self.KEY, "t1", "u1", ("u1", "u2"))
        actor = Actor(id="u2", role=Role.APPLICANT, applicant_id="app2")

        decision = await resolver.resolve(actor, self.KEY, STRICT)

        assert decision.allowed is False
        assert "find_message_attachments" not in repository.calls

    @pytest.mark.asyncio
    async def test_owner_must_be_participant(self, repository, resolver):
        """Test a file re-sent in a thread its owner is not part of is denied"""
        repository.add_attachment(self.KEY, "t9", "u2", ("u2", "u3"))
        actor = Actor(id="u3", role=Role.APPLICANT, applicant_id="app3")

        decision = await resolver.resolve(actor, self.KEY, GENERAL)

        assert decision.allowed is False

    @pytest.mark.asyncio
    async def test_sender_is_owner_for_unowned_keys(self, repository, resolver):
        """Test keys without an owner segment use the sender"""
        key = "messages/t1/f1.png"
        repository.add_attachment(key, "t1", "u1", ("u1", "u2"))
        actor = Actor(id="u2", role=Role.MODERATOR)

        decision = await resolver.resolve(actor, key, GENERAL)

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_unknown_role_in_thread(self, repository, resolver):
        """Test roles with no grants can still read attachments sent to them"""
        repository.add_attachment(self.KEY, "t1", "u1", ("u1", "u2"))
        actor = Actor(id="u2", role=Role.UNKNOWN)

        decision = await resolver.resolve(actor, self.KEY, GENERAL)

        assert decision.allowed is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", [Role.APPLICANT, Role.INSTITUTION])
    async def test_participant_without_profile_row(self, repository, resolver, role):
        """Test thread attachments do not depend on the actor's profile row"""
        repository.add_attachment(self.KEY, "t1", "u1", ("u1", "u2"))
        actor = Actor(id="u2", role=role)

        decision = await resolver.resolve(actor, self.KEY, GENERAL)

        assert decision.allowed is True
        assert decision.rule is AccessRule.THREAD_ATTACHMENT

    @pytest.mark.asyncio
    async def test_missing_profile_reported_after_thread_miss(self, repository, resolver):
        """Test profile-less actors outside the thread still get missing_profile"""
        repository.add_attachment(self.KEY, "t1", "u1", ("u1", "u3"))
        actor = Actor(id="u2", role=Role.APPLICANT)

        decision = await resolver.resolve(actor, self.KEY, GENERAL)

        assert decision.allowed is False
        assert decision.rule is AccessRule.MISSING_PROFILE
        assert "find_message_attachments" in repository.calls


@pytest.mark.unit
class TestStaffRules:
    """Test admin and moderator resolution"""

    @pytest.mark.asyncio
    async def test_strict_route_denied(self, repository, resolver, admin):
        """Test staff cannot use the strict document route"""
        repository.add_detail(UPLOAD, applicant_id="app1", institution_id="inst1")

        decision = await resolver.resolve(admin, UPLOAD, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.ROLE_NOT_PERMITTED

    @pytest.mark.asyncio
    async def test_applicant_profile_object(self, repository, resolver, admin):
        """Test staff can read applicant profile objects on the general route"""
        repository.user_roles["u-app1"] = "applicant"

        decision = await resolver.resolve(admin, "users/u-app1/profile.png", GENERAL)

        assert decision.allowed is True
        assert decision.rule is AccessRule.STAFF_PROFILE_ACCESS

    @pytest.mark.asyncio
    async def test_institution_profile_object(self, resolver, moderator):
        """Test staff can read institution objects on the general route"""
        decision = await resolver.resolve(moderator, "institutions/inst1/logo.png", GENERAL)

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_other_staff_objects(self, repository, resolver, moderator):
        """Test staff cannot read other staff users' objects"""
        repository.user_roles["u-admin"] = "admin"

        decision = await resolver.resolve(moderator, "users/u-admin/notes.png", GENERAL)

        assert decision.allowed is False
        assert decision.rule is AccessRule.STAFF_PROFILE_ACCESS

    @pytest.mark.asyncio
    async def test_unowned_keys(self, resolver, admin):
        """Test keys outside owned classes are denied"""
        decision = await resolver.resolve(admin, "applications/a-1/cv.pdf", GENERAL)

        assert decision.allowed is False


@pytest.mark.unit
class TestDispatch:
    """Test dispatch and fail-closed behaviour"""

    @pytest.mark.asyncio
    async def test_unknown_role(self, resolver):
        """Test unrecognised roles get nothing"""
        actor = Actor(id="u-x", role=Role.UNKNOWN)

        decision = await resolver.resolve(actor, PROFILE_DOC, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.ROLE_NOT_PERMITTED

    @pytest.mark.asyncio
    async def test_anonymous(self, resolver):
        """Test the anonymous actor gets nothing"""
        decision = await resolver.resolve(Actor.anonymous(), PROFILE_DOC, GENERAL)

        assert decision.allowed is False

    @pytest.mark.asyncio
    async def test_lookup_failure_denies(self, repository, resolver, institution):
        """Test a failing lookup folds into a deny"""
        repository.add_detail(UPLOAD, applicant_id="app1", institution_id="inst1")
        repository.failure = UpstreamFailureException(source="database")

        decision = await resolver.resolve(institution, UPLOAD, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.UPSTREAM_FAILURE
        assert decision.cacheable is False

    @pytest.mark.asyncio
    async def test_unexpected_error_denies(self, repository, resolver, applicant):
        """Test any error, not just known ones, fails closed"""
        repository.add_document("d1", "app1", PROFILE_DOC)
        repository.failure = OperationalError("SELECT", {}, Exception("connection reset"))

        decision = await resolver.resolve(applicant, PROFILE_DOC, STRICT)

        assert decision.allowed is False
        assert decision.rule is AccessRule.UPSTREAM_FAILURE


@pytest.mark.unit
class TestGatherCandidates:
    """Test concurrent candidate lookups"""

    @pytest.mark.asyncio
    async def test_results_in_order(self):
        """Test results keep argument order"""
        async def value(v, delay):
            await asyncio.sleep(delay)
            return v

        assert await gather_candidates(value(1, 0.02), value(2, 0)) == [1, 2]

    @pytest.mark.asyncio
    async def test_waits_for_all_then_raises(self):
        """Test a failure is raised only after the other lookups finish"""
        finished = []

        async def slow():
            await asyncio.sleep(0.01)
            finished.append("slow")
            return 1

        async def failing():
            raise UpstreamFailureException(source="database")

        with pytest.raises(UpstreamFailureException):
            await gather_candidates(failing(), slow())
        assert finished == ["slow"]

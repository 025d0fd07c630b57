"""Tests for VerificationService.

Runs the protocol against an in-memory SQLite database with an injected
clock.
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from pethaven.db.models import Pet, Verification
from pethaven.exceptions import (
    Conflict,
    Expired,
    Forbidden,
    InvalidStateError,
    NotFound,
    ValidationError,
)
from pethaven.pets.store import PetRecordStore
from pethaven.verification.models import VerificationStatus
from pethaven.verification.roles import RoleError
from pethaven.verification.service import VerificationService
from pethaven.verification.store import VerificationStore

from tests.conftest import CLAIMANT_EMAIL, FINDER_EMAIL


class FakeClock:
    """Settable clock returning naive UTC datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def service(in_memory_db, clock, audit):
    return VerificationService(
        in_memory_db,
        clock=clock,
        ttl=timedelta(days=7),
        audit=audit,
        max_message_length=50,
    )


@pytest.fixture
def pending(service, identities, lost_pet):
    """A PENDING TAG verification for the lost pet, opened by the claimant."""
    verification, _ = service.initiate(identities["claimant"], lost_pet.id, "TAG")
    return verification


def _verification(verification_id, pet_id, finder_id, claimant_id, now) -> Verification:
    return Verification(
        id=verification_id,
        pet_id=pet_id,
        finder_id=finder_id,
        claimant_id=claimant_id,
        verification_method="TAG",
        status="PENDING",
        created_at=now,
        updated_at=now,
        expires_at=now + timedelta(days=7),
    )


def _pet(db, pet_id) -> Pet:
    db.expire_all()
    return PetRecordStore(db).find_by_id(pet_id)


class TestInitiate:
    def test_lost_pet_claim(self, service, identities, users, lost_pet, clock):
        verification, created = service.initiate(identities["claimant"], lost_pet.id, "TAG")

        assert created is True
        assert verification.status == "PENDING"
        assert verification.finder_id == users["finder"].id
        assert verification.claimant_id == users["claimant"].id
        assert verification.verification_method == "TAG"
        assert verification.evidence is None
        assert verification.admin_notes is None
        assert verification.chat_history == []
        assert verification.expires_at == clock.now + timedelta(days=7)
        assert verification.version == 1

    def test_initiate_is_idempotent(self, service, identities, lost_pet):
        first, created = service.initiate(identities["claimant"], lost_pet.id, "TAG")
        second, created_again = service.initiate(identities["claimant"], lost_pet.id, "PHOTO")

        assert created is True
        assert created_again is False
        assert second.id == first.id
        assert second.verification_method == "TAG"

    def test_concurrent_initiate_returns_committed_row(
        self, service, session_factory, identities, users, lost_pet, clock, monkeypatch
    ):
        other = session_factory()
        try:
            other.add(_verification("raced", lost_pet.id, users["finder"].id, users["claimant"].id, clock.now))
            other.commit()
        finally:
            other.close()

        lookup = service.verifications.get_by_pet_and_claimant
        calls = []

        def miss_first_lookup(pet_id, claimant_id):
            calls.append((pet_id, claimant_id))
            if len(calls) == 1:
                return None
            return lookup(pet_id, claimant_id)

        monkeypatch.setattr(service.verifications, "get_by_pet_and_claimant", miss_first_lookup)

        verification, created = service.initiate(identities["claimant"], lost_pet.id, "TAG")

        assert created is False
        assert verification.id == "raced"

    def test_reversed_pair_conflicts(self, service, in_memory_db, identities, users, lost_pet, clock):
        VerificationStore(in_memory_db).add(
            _verification("swapped", lost_pet.id, users["claimant"].id, users["finder"].id, clock.now)
        )
        with pytest.raises(Conflict, match="reverse roles"):
            service.initiate(identities["claimant"], lost_pet.id, "TAG")

    def test_self_claim_rejected(self, service, identities, lost_pet):
        with pytest.raises(RoleError):
            service.initiate(identities["finder"], lost_pet.id, "TAG")

    def test_found_pet_finder_names_claimant(self, service, identities, users, found_pet):
        verification, created = service.initiate(
            identities["finder"], found_pet.id, "MICROCHIP", claimant_email=CLAIMANT_EMAIL
        )
        assert created is True
        assert verification.finder_id == users["finder"].id
        assert verification.claimant_id == users["claimant"].id

    def test_found_pet_third_party_forbidden(self, service, identities, found_pet):
        with pytest.raises(Forbidden):
            service.initiate(
                identities["stranger"], found_pet.id, "TAG", claimant_email=CLAIMANT_EMAIL
            )

    def test_found_pet_unknown_claimant(self, service, identities, found_pet):
        with pytest.raises(NotFound, match="Claimant"):
            service.initiate(
                identities["finder"], found_pet.id, "TAG", claimant_email="nobody@example.com"
            )

    def test_unknown_pet(self, service, identities):
        with pytest.raises(NotFound, match="Pet not found"):
            service.initiate(identities["claimant"], "missing", "TAG")

    def test_reporter_without_user_record(self, service, in_memory_db, identities):
        pet = PetRecordStore(in_memory_db).create(owner="ghost@example.com", disposition="lost")
        with pytest.raises(NotFound, match="finder"):
            service.initiate(identities["claimant"], pet.id, "TAG")

    def test_unknown_method(self, service, identities, lost_pet):
        with pytest.raises(ValidationError) as exc_info:
            service.initiate(identities["claimant"], lost_pet.id, "DNA")
        assert exc_info.value.field == "verificationMethod"

    def test_adopted_pet_not_eligible(self, service, in_memory_db, identities, lost_pet):
        PetRecordStore(in_memory_db).update_disposition(lost_pet.id, "adopted")
        with pytest.raises(ValidationError):
            service.initiate(identities["claimant"], lost_pet.id, "TAG")

    def test_audited(self, service, identities, lost_pet, audit):
        service.initiate(identities["claimant"], lost_pet.id, "TAG")
        events = audit.get_recent_events(action_filter="verification.initiate")
        assert len(events) == 1
        assert events[0]["principal"] == CLAIMANT_EMAIL


class TestView:
    def test_participants_and_admin_can_view(self, service, identities, pending):
        for role in ("finder", "claimant", "admin"):
            assert service.get(identities[role], pending.id).id == pending.id

    def test_stranger_cannot_view(self, service, identities, pending, audit):
        with pytest.raises(Forbidden):
            service.get(identities["stranger"], pending.id)
        assert audit.get_recent_events(status_filter="denied")

    def test_missing_verification(self, service, identities):
        with pytest.raises(NotFound):
            service.get(identities["admin"], "missing")

    def test_list_for_participant(self, service, identities, pending):
        assert [v.id for v in service.list_for(identities["finder"])] == [pending.id]
        assert service.list_for(identities["stranger"]) == []


class TestSubmitEvidence:
    def test_claimant_submits_once(self, service, identities, pending, clock):
        clock.advance(minutes=5)
        verification = service.submit_evidence(
            identities["claimant"], pending.id, {"uniqueIdentifier": " TAG-123 "}
        )
        assert verification.evidence == {"method": "TAG", "uniqueIdentifier": "TAG-123"}
        assert verification.evidence_submitted_at == clock.now
        assert verification.status == "PENDING"

        with pytest.raises(Forbidden, match="already been submitted"):
            service.submit_evidence(identities["claimant"], pending.id, {"uniqueIdentifier": "X"})

    def test_finder_cannot_submit(self, service, identities, pending):
        with pytest.raises(Forbidden, match="Only the claimant"):
            service.submit_evidence(identities["finder"], pending.id, {"uniqueIdentifier": "X"})

    def test_missing_field(self, service, identities, pending):
        with pytest.raises(ValidationError) as exc_info:
            service.submit_evidence(identities["claimant"], pending.id, {})
        assert exc_info.value.field == "uniqueIdentifier"

    def test_declared_method_must_match(self, service, identities, pending):
        with pytest.raises(ValidationError) as exc_info:
            service.submit_evidence(
                identities["claimant"], pending.id, {"uniqueIdentifier": "X"}, declared_method="MICROCHIP"
            )
        assert exc_info.value.field == "verificationMethod"

    def test_not_after_dispute(self, service, identities, pending):
        service.dispute(identities["finder"], pending.id, "suspicious")
        with pytest.raises(InvalidStateError):
            service.submit_evidence(identities["claimant"], pending.id, {"uniqueIdentifier": "X"})


class TestRespond:
    def test_tag_scenario(self, service, in_memory_db, identities, lost_pet):
        """Claimant submits a tag, finder verifies, pet is reunited."""
        verification, _ = service.initiate(identities["claimant"], lost_pet.id, "TAG")
        service.submit_evidence(identities["claimant"], verification.id, {"uniqueIdentifier": "TAG-123"})

        verification = service.respond(identities["finder"], verification.id, "VERIFIED")

        assert verification.status == "VERIFIED"
        assert _pet(in_memory_db, lost_pet.id).disposition == "adopted"

        with pytest.raises(InvalidStateError):
            service.send_message(identities["claimant"], verification.id, "thanks!")

    def test_reject_leaves_pet(self, service, in_memory_db, identities, pending, lost_pet):
        verification = service.respond(
            identities["finder"], pending.id, "REJECTED", admin_notes="Tag did not match"
        )
        assert verification.status == "REJECTED"
        assert verification.admin_notes == "Tag did not match"
        assert _pet(in_memory_db, lost_pet.id).disposition == "lost"

    def test_only_finder(self, service, identities, pending):
        with pytest.raises(Forbidden):
            service.respond(identities["claimant"], pending.id, "VERIFIED")
        with pytest.raises(Forbidden):
            service.respond(identities["admin"], pending.id, "VERIFIED")

    @pytest.mark.parametrize("status", ["PENDING", "DISPUTED", "MAYBE"])
    def test_status_must_be_decision(self, service, identities, pending, status):
        with pytest.raises(ValidationError) as exc_info:
            service.respond(identities["finder"], pending.id, status)
        assert exc_info.value.field == "status"

    def test_terminal_is_final(self, service, identities, pending):
        service.respond(identities["finder"], pending.id, "REJECTED")
        with pytest.raises(InvalidStateError):
            service.respond(identities["finder"], pending.id, "VERIFIED")
        with pytest.raises(InvalidStateError):
            service.dispute(identities["claimant"], pending.id, "unfair")

    def test_finder_photos_only_for_photo(self, service, identities, pending):
        with pytest.raises(ValidationError) as exc_info:
            service.respond(identities["finder"], pending.id, "VERIFIED", finder_photos=["https://img/f.jpg"])
        assert exc_info.value.field == "finderPhotos"

    def test_finder_photos_merged(self, service, identities, lost_pet):
        verification, _ = service.initiate(identities["claimant"], lost_pet.id, "PHOTO")
        service.submit_evidence(identities["claimant"], verification.id, {"ownerPhotos": ["https://img/o.jpg"]})

        verification = service.respond(
            identities["finder"], verification.id, "VERIFIED", finder_photos=["https://img/f.jpg"]
        )
        assert verification.evidence == {
            "method": "PHOTO",
            "ownerPhotos": ["https://img/o.jpg"],
            "finderPhotos": ["https://img/f.jpg"],
        }


class TestChat:
    def test_participants_exchange_messages(self, service, identities, users, pending, clock):
        service.send_message(identities["claimant"], pending.id, "Is this my dog?")
        clock.advance(seconds=30)
        verification = service.send_message(identities["finder"], pending.id, "  Send a photo  ")

        messages = [(m.sender_id, m.message) for m in verification.chat_history]
        assert messages == [
            (users["claimant"].id, "Is this my dog?"),
            (users["finder"].id, "Send a photo"),
        ]
        assert verification.chat_history[1].timestamp == clock.now
        assert verification.updated_at == clock.now

    def test_stranger_and_admin_excluded(self, service, identities, pending):
        with pytest.raises(Forbidden):
            service.send_message(identities["stranger"], pending.id, "hi")
        with pytest.raises(Forbidden):
            service.send_message(identities["admin"], pending.id, "hi")

    def test_expired_chat(self, service, identities, pending, clock):
        clock.advance(days=7)
        with pytest.raises(Expired, match="expired") as exc_info:
            service.send_message(identities["claimant"], pending.id, "still there?")
        assert exc_info.value.status_code == 410

    def test_participant_check_precedes_expiry(self, service, identities, pending, clock):
        clock.advance(days=8)
        with pytest.raises(Forbidden):
            service.send_message(identities["stranger"], pending.id, "hi")

    @pytest.mark.parametrize("message", ["", "   ", None, "x" * 51])
    def test_message_bounds(self, service, identities, pending, message):
        with pytest.raises(ValidationError) as exc_info:
            service.send_message(identities["claimant"], pending.id, message)
        assert exc_info.value.field == "message"

    def test_no_chat_while_disputed(self, service, identities, pending):
        service.dispute(identities["claimant"], pending.id, "no answer")
        with pytest.raises(InvalidStateError):
            service.send_message(identities["claimant"], pending.id, "hello?")


class TestDisputeAndResolve:
    def test_dispute_records_reason(self, service, identities, users, pending, clock):
        verification = service.dispute(identities["claimant"], pending.id, "  Finder is not responding ")
        assert verification.status == "DISPUTED"
        assert verification.dispute_reason == "Finder is not responding"
        assert verification.disputed_by_id == users["claimant"].id
        assert verification.dispute_opened_at == clock.now

    def test_redispute_is_unchanged(self, service, identities, pending, clock):
        first = service.dispute(identities["claimant"], pending.id, "first")
        version = first.version
        clock.advance(hours=1)
        again = service.dispute(identities["finder"], pending.id, "second")
        assert again.dispute_reason == "first"
        assert again.version == version

    def test_reason_required(self, service, identities, pending):
        with pytest.raises(ValidationError) as exc_info:
            service.dispute(identities["claimant"], pending.id, "  ")
        assert exc_info.value.field == "disputeReason"

    def test_stranger_cannot_dispute(self, service, identities, pending):
        with pytest.raises(Forbidden):
            service.dispute(identities["stranger"], pending.id, "meddling")

    def test_lookup_and_access_precede_reason_check(self, service, identities, pending):
        with pytest.raises(NotFound):
            service.dispute(identities["claimant"], "missing", "")
        with pytest.raises(Forbidden):
            service.dispute(identities["stranger"], pending.id, "   ")

    def test_admin_resolves(self, service, in_memory_db, identities, users, pending, lost_pet):
        service.dispute(identities["finder"], pending.id, "photos look edited")
        verification = service.resolve(identities["admin"], pending.id, "VERIFIED", admin_notes="Vet records match")

        assert verification.status == "VERIFIED"
        assert verification.resolved_by_id == users["admin"].id
        assert verification.admin_notes == "Vet records match"
        assert _pet(in_memory_db, lost_pet.id).disposition == "adopted"

    def test_resolve_admin_only(self, service, identities, pending):
        service.dispute(identities["finder"], pending.id, "reason")
        with pytest.raises(Forbidden, match="Only admins"):
            service.resolve(identities["finder"], pending.id, "VERIFIED")

    def test_resolve_requires_dispute(self, service, identities, pending):
        with pytest.raises(InvalidStateError):
            service.resolve(identities["admin"], pending.id, "REJECTED")

    def test_list_disputes_oldest_first(self, service, in_memory_db, identities, users, lost_pet, clock):
        second_pet = PetRecordStore(in_memory_db).create(owner=FINDER_EMAIL, disposition="lost")
        a, _ = service.initiate(identities["claimant"], lost_pet.id, "TAG")
        b, _ = service.initiate(identities["claimant"], second_pet.id, "MANUAL")

        service.dispute(identities["finder"], b.id, "older")
        clock.advance(hours=2)
        service.dispute(identities["finder"], a.id, "newer")
        clock.advance(hours=1)

        disputes = service.list_disputes(identities["admin"])
        assert [v.id for v in disputes] == [b.id, a.id]
        assert service.dispute_age_seconds(disputes[0]) == 3 * 3600

        with pytest.raises(Forbidden):
            service.list_disputes(identities["finder"])


class TestConcurrency:
    def test_stale_write_conflicts(self, service, in_memory_db, identities, pending):
        verification = service.get(identities["finder"], pending.id)
        # Another writer bumps the version behind this session's back
        in_memory_db.execute(
            text("UPDATE verifications SET version = version + 1 WHERE id = :id"),
            {"id": verification.id},
        )

        with pytest.raises(Conflict):
            service.respond(identities["finder"], verification.id, "REJECTED")

    def test_versions_increase(self, service, identities, pending):
        before = pending.version
        after = service.submit_evidence(identities["claimant"], pending.id, {"uniqueIdentifier": "T"})
        assert after.version == before + 1

from datetime import timedelta

import pytest

from app.core.errors import ConflictError, CreationFailed, NotFound, ValidationFailed
from app.core.security import INVITE_CODE_ALPHABET, generate_invite_code
from app.models import MEMBERSHIP_EXPIRED, InviteCode
from app.services import invite_service


def test_generated_codes_use_unambiguous_alphabet():
    for _ in range(200):
        code = generate_invite_code()
        assert len(code) == 8
        assert set(code) <= set(INVITE_CODE_ALPHABET)
    assert not set("0O1I") & set(INVITE_CODE_ALPHABET)


@pytest.mark.parametrize("quantity", [0, -1, 11])
def test_create_invites_rejects_bad_quantity(db, partner, quantity):
    with pytest.raises(ValidationFailed):
        invite_service.create_invites(db, partner.id, quantity, 30)
    assert db.query(InviteCode).count() == 0


def test_create_invites_records_creator_and_days(db, partner):
    invites = invite_service.create_invites(db, partner.id, 3, 45)

    assert len(invites) == 3
    assert len({invite.code for invite in invites}) == 3
    for invite in invites:
        assert invite.created_by_user_id == partner.id
        assert invite.allotted_days == 45
        assert invite.used is False


def test_create_invites_skips_code_that_keeps_colliding(db, partner, monkeypatch):
    db.add(InviteCode(code="AAAAAAAA", created_by_user_id=partner.id, allotted_days=30))
    db.commit()
    codes = iter(["AAAAAAAA", "AAAAAAAA", "AAAAAAAA", "BBBBBBBB"])
    monkeypatch.setattr(invite_service, "generate_invite_code", lambda: next(codes))

    invites = invite_service.create_invites(db, partner.id, 2, 30)

    assert [invite.code for invite in invites] == ["BBBBBBBB"]


def test_create_invites_fails_when_nothing_created(db, partner, monkeypatch):
    db.add(InviteCode(code="AAAAAAAA", created_by_user_id=partner.id, allotted_days=30))
    db.commit()
    monkeypatch.setattr(invite_service, "generate_invite_code", lambda: "AAAAAAAA")

    with pytest.raises(CreationFailed):
        invite_service.create_invites(db, partner.id, 1, 30)


def test_find_available_is_case_insensitive_and_hides_used(db, partner, active_student, now):
    invite = InviteCode(code="K7MX2QPA", created_by_user_id=partner.id, allotted_days=30)
    db.add(invite)
    db.commit()

    assert invite_service.find_available_by_code(db, " k7mx2qpa ").id == invite.id

    invite_service.mark_used(db, invite, active_student.id, now)
    db.commit()

    with pytest.raises(NotFound) as used_exc:
        invite_service.find_available_by_code(db, "K7MX2QPA")
    with pytest.raises(NotFound) as unknown_exc:
        invite_service.find_available_by_code(db, "ZZZZZZZZ")
    assert used_exc.value.message == unknown_exc.value.message


def test_mark_used_flips_only_once(db, partner, active_student, make_user, now):
    invite = InviteCode(code="K7MX2QPA", created_by_user_id=partner.id, allotted_days=30)
    db.add(invite)
    db.commit()

    invite_service.mark_used(db, invite, active_student.id, now)
    db.commit()

    other = make_user()
    with pytest.raises(ConflictError):
        invite_service.mark_used(db, invite, other.id, now + timedelta(minutes=1))
    db.rollback()

    db.refresh(invite)
    assert invite.used is True
    assert invite.used_by_user_id == active_student.id


def test_delete_available_invite(db, partner):
    invite = invite_service.create_invites(db, partner.id, 1, 30)[0]

    invite_service.delete_invite(db, invite.id, creator_id=partner.id)

    assert db.get(InviteCode, invite.id) is None


def test_delete_refuses_invite_of_active_student(db, partner, active_student, now):
    invite = InviteCode(code="K7MX2QPA", created_by_user_id=partner.id, allotted_days=30)
    db.add(invite)
    db.commit()
    invite_service.mark_used(db, invite, active_student.id, now)
    db.commit()

    with pytest.raises(ConflictError):
        invite_service.delete_invite(db, invite.id, creator_id=partner.id, now=now)
    assert db.get(InviteCode, invite.id) is not None

    active_student.membership_state = MEMBERSHIP_EXPIRED
    db.commit()
    invite_service.delete_invite(db, invite.id, creator_id=partner.id, now=now)
    assert db.get(InviteCode, invite.id) is None


def test_delete_scoped_to_creator(db, partner, make_user):
    invite = invite_service.create_invites(db, partner.id, 1, 30)[0]
    stranger = make_user(account_role=partner.account_role)

    with pytest.raises(NotFound):
        invite_service.delete_invite(db, invite.id, creator_id=stranger.id)

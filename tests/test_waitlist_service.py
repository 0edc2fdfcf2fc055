from datetime import timedelta

import pytest

from app.core.exceptions import NotFound, PolicyViolation
from app.modules.waitlist.schemas import WaitlistAdd, WaitlistState
from app.modules.waitlist.service import WAITLIST_TABLE
from conftest import NOW, seed_program, seed_registration, seed_waitlist_entry


def positions(repo, program) -> dict:
    rows = repo.query(WAITLIST_TABLE, [], order_by="position")
    return {row["player_id"]: row["position"] for row in rows if row["program_id"] == program["id"]}


def add(waitlist_service, program, player_id):
    return waitlist_service.add_to_waitlist(
        WaitlistAdd(program_id=program["id"], player_id=player_id, added_by="parent-1")
    )


def test_add_assigns_next_position(repo, waitlist_service):
    program = seed_program(repo)

    first = add(waitlist_service, program, "player-1")
    second = add(waitlist_service, program, "player-2")

    assert (first.position, second.position) == (1, 2)
    assert first.state == WaitlistState.QUEUED


@pytest.mark.parametrize("overrides,message", [
    ({"status": "draft"}, "not open for registration"),
    ({"waitlist_enabled": False}, "not enabled"),
])
def test_add_rejects_closed_programs(repo, waitlist_service, overrides, message):
    program = seed_program(repo, **overrides)

    with pytest.raises(PolicyViolation, match=message):
        add(waitlist_service, program, "player-1")


def test_add_rejects_when_waitlist_full(repo, waitlist_service):
    program = seed_program(repo, waitlist_limit=1)
    add(waitlist_service, program, "player-1")

    with pytest.raises(PolicyViolation, match="Waitlist is full"):
        add(waitlist_service, program, "player-2")


def test_add_rejects_player_already_queued(repo, waitlist_service):
    program = seed_program(repo)
    add(waitlist_service, program, "player-1")

    with pytest.raises(PolicyViolation, match="already on the waitlist"):
        add(waitlist_service, program, "player-1")


def test_add_rejects_player_already_registered(repo, waitlist_service):
    program = seed_program(repo)
    seed_registration(repo, program, "player-1", status="pending")

    with pytest.raises(PolicyViolation, match="already registered"):
        add(waitlist_service, program, "player-1")


def test_remove_compacts_positions(repo, waitlist_service):
    program = seed_program(repo)
    seed_waitlist_entry(repo, program, "player-1", 1)
    middle = seed_waitlist_entry(repo, program, "player-2", 2)
    seed_waitlist_entry(repo, program, "player-3", 3)

    waitlist_service.remove_from_waitlist(middle["id"])

    assert positions(repo, program) == {"player-1": 1, "player-3": 2}


def test_remove_player_compacts_and_leaves_other_programs_alone(repo, waitlist_service):
    program = seed_program(repo)
    other = seed_program(repo, name="Other")
    seed_waitlist_entry(repo, program, "player-1", 1)
    seed_waitlist_entry(repo, program, "player-2", 2)
    seed_waitlist_entry(repo, other, "player-9", 2)

    waitlist_service.remove_player_from_waitlist(program["id"], "player-1")

    assert positions(repo, program) == {"player-2": 1}
    assert positions(repo, other) == {"player-9": 2}


def test_remove_player_not_queued(repo, waitlist_service):
    program = seed_program(repo)

    with pytest.raises(NotFound):
        waitlist_service.remove_player_from_waitlist(program["id"], "ghost")


def test_positions_stay_contiguous_through_adds_and_removes(repo, waitlist_service):
    program = seed_program(repo)
    entries = [add(waitlist_service, program, f"player-{n}") for n in range(1, 6)]

    waitlist_service.remove_from_waitlist(entries[0].id)
    waitlist_service.remove_from_waitlist(entries[3].id)
    add(waitlist_service, program, "player-6")

    assert sorted(positions(repo, program).values()) == [1, 2, 3, 4]
    assert positions(repo, program)["player-6"] == 4


def test_next_in_waitlist_skips_promoted(repo, waitlist_service):
    program = seed_program(repo)
    seed_waitlist_entry(repo, program, "player-1", 1, promoted_at=NOW.isoformat())
    seed_waitlist_entry(repo, program, "player-2", 2)

    assert waitlist_service.get_next_in_waitlist(program["id"]).player_id == "player-2"


def test_promote_sets_claim_window(repo, waitlist_service):
    program = seed_program(repo)
    entry = seed_waitlist_entry(repo, program, "player-1", 1)

    promoted = waitlist_service.promote_from_waitlist(entry["id"], now=NOW)

    assert promoted.state == WaitlistState.PROMOTED
    assert promoted.promoted_at == NOW
    assert promoted.notification_sent_at == NOW
    assert promoted.promotion_expires_at == NOW + timedelta(hours=48)
    assert promoted.position == 1


def test_promote_with_custom_claim_hours(repo, waitlist_service):
    program = seed_program(repo)
    entry = seed_waitlist_entry(repo, program, "player-1", 1)

    promoted = waitlist_service.promote_from_waitlist(entry["id"], claim_hours=12, now=NOW)

    assert promoted.promotion_expires_at == NOW + timedelta(hours=12)


def test_claim_requires_promotion(repo, waitlist_service):
    program = seed_program(repo)
    entry = seed_waitlist_entry(repo, program, "player-1", 1)

    with pytest.raises(PolicyViolation):
        waitlist_service.claim_promoted_spot(entry["id"], "reg-1")

    waitlist_service.promote_from_waitlist(entry["id"], now=NOW)
    claimed = waitlist_service.claim_promoted_spot(entry["id"], "reg-1", now=NOW)

    assert claimed.state == WaitlistState.CLAIMED
    assert claimed.registration_id == "reg-1"


def test_claim_after_window_closes_is_refused(repo, waitlist_service):
    program = seed_program(repo)
    entry = seed_waitlist_entry(repo, program, "player-1", 1)
    waitlist_service.promote_from_waitlist(entry["id"], now=NOW)

    with pytest.raises(PolicyViolation) as exc_info:
        waitlist_service.claim_promoted_spot(entry["id"], "reg-1", now=NOW + timedelta(hours=49))

    assert exc_info.value.message == "Waitlist promotion has expired"
    assert repo.get(WAITLIST_TABLE, entry["id"])["registration_id"] is None


def test_claim_inside_window_boundary(repo, waitlist_service):
    program = seed_program(repo)
    entry = seed_waitlist_entry(repo, program, "player-1", 1)
    waitlist_service.promote_from_waitlist(entry["id"], now=NOW)

    claimed = waitlist_service.claim_promoted_spot(entry["id"], "reg-1", now=NOW + timedelta(hours=48))

    assert claimed.registration_id == "reg-1"


def test_second_claim_is_refused(repo, waitlist_service):
    program = seed_program(repo)
    entry = seed_waitlist_entry(repo, program, "player-1", 1)
    waitlist_service.promote_from_waitlist(entry["id"], now=NOW)
    waitlist_service.claim_promoted_spot(entry["id"], "reg-1", now=NOW)

    with pytest.raises(PolicyViolation) as exc_info:
        waitlist_service.claim_promoted_spot(entry["id"], "reg-2", now=NOW)

    assert exc_info.value.status_code == 409
    assert repo.get(WAITLIST_TABLE, entry["id"])["registration_id"] == "reg-1"


def test_expired_promotions_exclude_claimed_and_live(repo, waitlist_service):
    program = seed_program(repo)
    lapsed = NOW - timedelta(hours=1)
    expired = seed_waitlist_entry(
        repo, program, "player-1", 1,
        promoted_at=(NOW - timedelta(hours=49)).isoformat(), promotion_expires_at=lapsed.isoformat(),
    )
    seed_waitlist_entry(
        repo, program, "player-2", 2,
        promoted_at=(NOW - timedelta(hours=49)).isoformat(), promotion_expires_at=lapsed.isoformat(),
        registration_id="reg-2",
    )
    seed_waitlist_entry(
        repo, program, "player-3", 3,
        promoted_at=NOW.isoformat(), promotion_expires_at=(NOW + timedelta(hours=48)).isoformat(),
    )

    result = waitlist_service.get_expired_promotions(now=NOW)

    assert [entry.id for entry in result] == [expired["id"]]


def test_reset_expired_promotion_recycles_to_tail(repo, waitlist_service):
    program = seed_program(repo)
    head = seed_waitlist_entry(
        repo, program, "player-1", 1,
        promoted_at=NOW.isoformat(), promotion_expires_at=NOW.isoformat(), notification_sent_at=NOW.isoformat(),
    )
    seed_waitlist_entry(repo, program, "player-2", 2)
    seed_waitlist_entry(repo, program, "player-3", 3)

    recycled = waitlist_service.reset_expired_promotion(head["id"])

    assert recycled.state == WaitlistState.QUEUED
    assert recycled.promotion_expires_at is None
    assert recycled.notification_sent_at is None
    assert positions(repo, program) == {"player-2": 1, "player-3": 2, "player-1": 3}


def test_process_after_cancellation_promotes_head(repo, waitlist_service):
    program = seed_program(repo)
    seed_waitlist_entry(repo, program, "player-1", 1)
    seed_waitlist_entry(repo, program, "player-2", 2)

    result = waitlist_service.process_waitlist_after_cancellation(program["id"], now=NOW)

    assert result.promoted is True
    assert result.player_id == "player-1"
    assert result.promotion_expires_at == NOW + timedelta(hours=48)


def test_process_after_cancellation_with_empty_queue(repo, waitlist_service):
    program = seed_program(repo)

    result = waitlist_service.process_waitlist_after_cancellation(program["id"], now=NOW)

    assert result.promoted is False
    assert result.player_id is None


def test_player_position_lookup(repo, waitlist_service):
    program = seed_program(repo)
    seed_waitlist_entry(repo, program, "player-1", 1)

    assert waitlist_service.get_player_waitlist_position(program["id"], "player-1") == 1
    assert waitlist_service.get_player_waitlist_position(program["id"], "ghost") is None


def test_list_waitlist_in_queue_order(repo, waitlist_service):
    program = seed_program(repo)
    seed_waitlist_entry(repo, program, "player-2", 2)
    seed_waitlist_entry(repo, program, "player-1", 1)

    page = waitlist_service.list_waitlist(program["id"])

    assert [entry.player_id for entry in page.data] == ["player-1", "player-2"]
    assert page.total == 2

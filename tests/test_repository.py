import pytest

from app.core.exceptions import UniqueViolation
from app.database.repository import InMemoryRepository, eq, gt, gte, in_, is_null, neq, not_null


def test_insert_assigns_id_and_timestamps(repo):
    row = repo.insert("program", {"name": "Camp"})

    assert row["id"]
    assert row["created_at"]
    assert repo.get("program", row["id"])["name"] == "Camp"


def test_returned_rows_are_copies(repo):
    row = repo.insert("program", {"name": "Camp", "cancellation_policy": {"partial_refund_percent": 50}})
    row["cancellation_policy"]["partial_refund_percent"] = 0

    assert repo.get("program", row["id"])["cancellation_policy"]["partial_refund_percent"] == 50


def test_unique_constraint(repo):
    repo.insert("program_waitlist", {"program_id": "p", "player_id": "a", "position": 1})

    with pytest.raises(UniqueViolation) as exc_info:
        repo.insert("program_waitlist", {"program_id": "p", "player_id": "a", "position": 2})
    assert exc_info.value.code == "23505"


def test_constraints_can_be_disabled():
    repo = InMemoryRepository(unique_constraints={})
    repo.insert("program_waitlist", {"program_id": "p", "player_id": "a"})
    repo.insert("program_waitlist", {"program_id": "p", "player_id": "a"})

    assert repo.count("program_waitlist") == 2


def test_filters_and_ordering(repo):
    for position, promoted in [(3, None), (1, "2026-03-01"), (2, None)]:
        repo.insert("program_waitlist", {"program_id": "p", "player_id": f"player-{position}", "position": position, "promoted_at": promoted})

    assert [r["position"] for r in repo.query("program_waitlist", order_by="position")] == [1, 2, 3]
    assert [r["position"] for r in repo.query("program_waitlist", order_by="position", desc=True)] == [3, 2, 1]
    assert [r["position"] for r in repo.query("program_waitlist", [is_null("promoted_at")], order_by="position")] == [2, 3]
    assert repo.count("program_waitlist", [not_null("promoted_at")]) == 1
    assert repo.count("program_waitlist", [gt("position", 1)]) == 2
    assert repo.count("program_waitlist", [in_("player_id", ["player-1", "player-3"])]) == 2
    assert [r["position"] for r in repo.query("program_waitlist", order_by="position", limit=1, offset=1)] == [2]


def test_nulls_sort_last(repo):
    repo.insert("program", {"name": "b", "start_date": None})
    repo.insert("program", {"name": "a", "start_date": "2026-01-01"})

    assert [r["name"] for r in repo.query("program", order_by="start_date")] == ["a", "b"]


def test_update_where_and_delete(repo):
    first = repo.insert("registration_payment", {"registration_id": "r", "status": "pending"})
    repo.insert("registration_payment", {"registration_id": "r", "status": "pending"})

    updated = repo.update_where("registration_payment", [eq("registration_id", "r")], {"status": "cancelled"})

    assert [row["status"] for row in updated] == ["cancelled", "cancelled"]
    assert repo.delete("registration_payment", first["id"]) is True
    assert repo.delete("registration_payment", first["id"]) is False
    assert repo.update("registration_payment", first["id"], {"status": "x"}) is None


def test_comparison_filters(repo):
    for status in ("pending", "succeeded", "failed"):
        repo.insert("registration_payment", {"registration_id": "r", "status": status, "retry_count": 2})

    assert repo.count("registration_payment", [neq("status", "pending")]) == 2
    assert repo.count("registration_payment", [gte("retry_count", 2)]) == 3
    assert repo.count("registration_payment", [gte("missing_column", 0)]) == 0

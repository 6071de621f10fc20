"""
LeadFlow CRM — Attribution / Target ledger
Lazy creation, dual crediting, goals, stats tree.
Run: cd backend && pytest tests/test_target_ledger.py -v
"""

import asyncio

import pytest

import config
from config import month_key
from models.target import TargetFilter, TargetSet
from services import target_ledger
from services.errors import Forbidden, NotFound

db = config.db

# 15 March 2026 15:30 IST, as client millis
MARCH_2026 = 1773568800000 + config.IST_OFFSET_MS


def _db_op(coro):
    """Run async DB operation in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestCreditRecipients:
    def test_updater_only(self):
        assert target_ledger.credit_recipients("staffS", {"id": "staffS", "second_privilege": "call-center"}) == ["staffS"]

    def test_regular_creator_not_credited(self):
        creator = {"id": "staffT", "second_privilege": "regular"}
        assert target_ledger.credit_recipients("staffS", creator) == ["staffS"]

    def test_call_center_creator_credited(self):
        creator = {"id": "agentC", "second_privilege": "call-center"}
        assert target_ledger.credit_recipients("staffS", creator) == ["staffS", "agentC"]

    def test_missing_creator(self):
        assert target_ledger.credit_recipients("staffS", None) == ["staffS"]


class TestCredit:
    def test_creates_missing_target(self):
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "staffS"}))
        target = _db_op(db.targets.find_one({"assigned": "staffS"}, {"_id": 0}))
        assert target["achieved"] == 1
        assert target["total"] == 0
        assert target["month"] == month_key()

    def test_increments_existing_target(self, ctx):
        _db_op(target_ledger.set_target(TargetSet(assigned="staffS", total=10), ctx("managerA")))
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "staffS"}))
        _db_op(target_ledger.credit("staffS", {"id": "L2", "created_by": "staffS"}))
        target = _db_op(db.targets.find_one({"assigned": "staffS"}, {"_id": 0}))
        assert target["total"] == 10
        assert target["achieved"] == 2
        assert _db_op(db.targets.count_documents({"assigned": "staffS"})) == 1

    def test_dual_credit(self):
        recipients = _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "agentC"}))
        assert recipients == ["staffS", "agentC"]
        for user_id in ("staffS", "agentC"):
            assert _db_op(db.targets.find_one({"assigned": user_id}))["achieved"] == 1
        assert _db_op(db.targets.count_documents({})) == 2

    def test_concurrent_credits_not_lost(self):
        async def _burst():
            await asyncio.gather(*[
                target_ledger.credit("staffT", {"id": f"L{i}", "created_by": "staffT"}) for i in range(5)
            ])

        _db_op(_burst())
        assert _db_op(db.targets.find_one({"assigned": "staffT"}))["achieved"] == 5


class TestSetTarget:
    def test_staff_forbidden(self, ctx):
        with pytest.raises(Forbidden):
            _db_op(target_ledger.set_target(TargetSet(assigned="staffS", total=5), ctx("staffT")))

    def test_manager_only_own_staff(self, ctx):
        with pytest.raises(Forbidden):
            _db_op(target_ledger.set_target(TargetSet(assigned="staffU", total=5), ctx("managerA")))

    def test_admin_cannot_target_admin(self, ctx):
        with pytest.raises(NotFound):
            _db_op(target_ledger.set_target(TargetSet(assigned="ops", total=5), ctx("root")))

    def test_update_keeps_achieved(self, ctx):
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "staffS"}))
        target = _db_op(target_ledger.set_target(TargetSet(assigned="staffS", total=8), ctx("managerA")))
        assert target["total"] == 8
        assert target["achieved"] == 1
        assert target["set_by"] == "managerA"

    def test_month_from_client_millis(self, ctx):
        target = _db_op(target_ledger.set_target(
            TargetSet(assigned="managerA", month=MARCH_2026, total=30), ctx("root")
        ))
        assert target["month"] == "2026-03-01T00:00:00+00:00"


class TestListTargets:
    def _seed(self, ctx):
        _db_op(target_ledger.set_target(TargetSet(assigned="staffS", total=5), ctx("managerA")))
        _db_op(target_ledger.set_target(TargetSet(assigned="staffU", total=7), ctx("managerB")))
        _db_op(target_ledger.set_target(TargetSet(assigned="managerA", total=20), ctx("ops")))

    def test_staff_sees_own(self, ctx):
        self._seed(ctx)
        rows = _db_op(target_ledger.list_targets(TargetFilter(), ctx("staffS")))
        assert [r["assigned"] for r in rows] == ["staffS"]
        assert rows[0]["assigned_name"] == "staffs"

    def test_manager_sees_staff(self, ctx):
        self._seed(ctx)
        rows = _db_op(target_ledger.list_targets(TargetFilter(), ctx("managerB")))
        assert [r["assigned"] for r in rows] == ["staffU"]

    def test_regular_admin_sees_what_they_set(self, ctx):
        self._seed(ctx)
        rows = _db_op(target_ledger.list_targets(TargetFilter(), ctx("ops")))
        assert [r["assigned"] for r in rows] == ["managerA"]

    def test_super_admin_sees_all(self, ctx):
        self._seed(ctx)
        rows = _db_op(target_ledger.list_targets(TargetFilter(), ctx("root")))
        assert len(rows) == 3


class TestStats:
    def test_staff_overall_only(self, ctx):
        _db_op(target_ledger.set_target(TargetSet(assigned="staffS", total=5), ctx("managerA")))
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "staffS"}))
        stats = _db_op(target_ledger.get_stats(ctx("staffS")))
        assert stats["overall"] == {"total": 5, "achieved": 1}
        assert stats["breakdown"] == []

    def test_manager_tree(self, ctx):
        _db_op(target_ledger.set_target(TargetSet(assigned="managerA", total=20), ctx("root")))
        _db_op(target_ledger.credit("managerA", {"id": "L0", "created_by": "managerA"}))
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "staffS"}))
        _db_op(target_ledger.credit("staffT", {"id": "L2", "created_by": "staffT"}))

        stats = _db_op(target_ledger.get_stats(ctx("managerA")))
        assert stats["overall"] == {"total": 20, "achieved": 3}
        by_user = {r["user_id"]: r for r in stats["breakdown"]}
        assert by_user["staffS"]["achieved"] == 1
        assert by_user["staffT"]["total"] == 0

    def test_admin_zero_fills_managers(self, ctx):
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "agentC"}))
        stats = _db_op(target_ledger.get_stats(ctx("root")))

        branches = {b["user_id"]: b for b in stats["breakdown"]}
        assert set(branches) == {"managerA", "managerB"}
        assert branches["managerB"]["total"] == 0
        assert branches["managerB"]["achieved"] == 0
        assert branches["managerA"]["achieved"] == 1

        agents = {c["user_id"]: c for c in stats["call_center"]}
        assert agents["agentC"]["achieved"] == 1
        assert stats["overall"]["achieved"] == 2
        assert stats["overall"]["total"] == 0

    def test_admin_total_includes_call_center_goals(self, ctx):
        _db_op(target_ledger.set_target(TargetSet(assigned="agentC", total=10), ctx("root")))
        _db_op(target_ledger.set_target(TargetSet(assigned="managerA", total=20), ctx("root")))
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "agentC"}))

        stats = _db_op(target_ledger.get_stats(ctx("root")))
        assert stats["overall"] == {"total": 30, "achieved": 2}

    def test_regular_admin_sees_only_goals_they_set(self, ctx):
        _db_op(target_ledger.set_target(TargetSet(assigned="staffS", total=5), ctx("ops")))
        _db_op(target_ledger.set_target(TargetSet(assigned="managerB", total=20), ctx("root")))
        _db_op(target_ledger.set_target(TargetSet(assigned="agentC", total=10), ctx("root")))
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "staffS"}))
        _db_op(target_ledger.credit("staffU", {"id": "L2", "created_by": "staffU"}))

        stats = _db_op(target_ledger.get_stats(ctx("ops")))
        assert [b["user_id"] for b in stats["breakdown"]] == ["managerA"]
        staff = {s["user_id"]: s for s in stats["breakdown"][0]["staff"]}
        assert staff["staffS"] == {"user_id": "staffS", "username": "staffs", "total": 5, "achieved": 1}
        assert staff["staffT"]["total"] == 0
        assert stats["call_center"] == []
        assert stats["overall"] == {"total": 0, "achieved": 1}

    def test_regular_admin_without_goals_sees_nothing(self, ctx):
        _db_op(target_ledger.set_target(TargetSet(assigned="managerA", total=20), ctx("root")))
        stats = _db_op(target_ledger.get_stats(ctx("ops")))
        assert stats["breakdown"] == []
        assert stats["overall"] == {"total": 0, "achieved": 0}

    def test_other_month_is_empty(self, ctx):
        _db_op(target_ledger.credit("staffS", {"id": "L1", "created_by": "staffS"}))
        stats = _db_op(target_ledger.get_stats(ctx("staffS"), MARCH_2026))
        assert stats["month"] == "2026-03-01T00:00:00+00:00"
        assert stats["overall"] == {"total": 0, "achieved": 0}

"""
LeadFlow CRM — Reporting aggregator
Staff report (shared dual-credit rule), lead analytics, call report.
Run: cd backend && pytest tests/test_reporting.py -v
"""

import asyncio
import time
from datetime import date

import pytest

import config
from models.activity import ReportFilter
from models.lead import LeadCreate, LeadStatusUpdate
from models.task import TaskComplete, TaskCreate
from services import lead_state_machine, reporting, task_linkage
from services.errors import Forbidden

db = config.db


def _db_op(coro):
    """Run async DB operation in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _make_lead(ctx, phone, **overrides):
    data = {
        "phone": phone, "name": "Divya", "address": "Koramangala", "product": "AC",
        "type": "fresh", "source": "instagram", "enquire_status": "new", "purpose": "sales",
    }
    data.update(overrides)
    return _db_op(lead_state_machine.create_lead(LeadCreate(**data), ctx))


def _in_days(days):
    return int(time.time() * 1000) + config.IST_OFFSET_MS + days * 86400000


class TestBuckets:
    def test_granularity_thresholds(self):
        start = date(2026, 1, 1)
        assert reporting.bucket_granularity(start, date(2026, 1, 30)) == "daily"
        assert reporting.bucket_granularity(start, date(2026, 1, 31)) == "weekly"
        assert reporting.bucket_granularity(start, date(2026, 3, 31)) == "weekly"
        assert reporting.bucket_granularity(start, date(2026, 4, 1)) == "monthly"

    def test_daily_zero_filled(self):
        days = [date(2026, 2, 1), date(2026, 2, 3), date(2026, 2, 3)]
        progress = reporting.build_progress(days, date(2026, 2, 1), date(2026, 2, 4))
        assert progress["granularity"] == "daily"
        assert [p["count"] for p in progress["series"]] == [1, 0, 2, 0]

    def test_bucket_dates_are_ist_millis(self):
        progress = reporting.build_progress([], date(1970, 1, 2), date(1970, 1, 2))
        assert progress["series"] == [{"date": 86400000, "count": 0}]

    def test_weekly(self):
        days = [date(2026, 1, 1), date(2026, 1, 8), date(2026, 1, 9), date(2026, 2, 20)]
        progress = reporting.build_progress(days, date(2026, 1, 1), date(2026, 2, 28))
        assert progress["granularity"] == "weekly"
        counts = [p["count"] for p in progress["series"]]
        assert counts[:2] == [1, 2]
        assert sum(counts) == 4

    def test_monthly(self):
        days = [date(2026, 1, 15), date(2026, 3, 2)]
        progress = reporting.build_progress(days, date(2026, 1, 1), date(2026, 6, 30))
        assert progress["granularity"] == "monthly"
        assert [p["count"] for p in progress["series"]] == [1, 0, 1, 0, 0, 0]

    def test_no_leads_no_bounds(self):
        assert reporting.build_progress([], None, None) == {"granularity": "daily", "series": []}


class TestClassifyCall:
    def test_outcomes(self):
        assert reporting.classify_call({"is_completed": False}) == "not_updated"
        assert reporting.classify_call({"is_completed": True, "call_status": None}) == "not_updated"
        assert reporting.classify_call({"is_completed": True, "call_status": "connected"}) == "connected"
        assert reporting.classify_call({"is_completed": True, "call_status": "not connected"}) == "not_connected"
        assert reporting.classify_call(
            {"is_completed": True, "call_status": "call back requested"}) == "call_back_requested"
        assert reporting.classify_call(
            {"is_completed": True, "call_status": "connected", "followup_task": "t2"}) == "follow_up_scheduled"


class TestStaffReport:
    def test_staff_forbidden(self, ctx):
        with pytest.raises(Forbidden):
            _db_op(reporting.staff_report(ReportFilter(), ctx("staffS")))

    def test_won_credit_follows_ledger_rule(self, ctx):
        lead = _make_lead(ctx("agentC"), "9200000001", manager="managerA")
        _db_op(lead_state_machine.transfer_lead(lead["id"], "managerA", ctx("agentC")))
        _db_op(lead_state_machine.transfer_lead(lead["id"], "staffS", ctx("managerA")))
        _db_op(lead_state_machine.update_status(lead["id"], LeadStatusUpdate(enquire_status="won"), ctx("staffS")))

        report = _db_op(reporting.staff_report(ReportFilter(), ctx("root")))
        users = {u["user_id"]: u for u in report["users"]}
        assert users["staffS"]["won"] == 1
        assert users["agentC"]["won"] == 1
        assert users["agentC"]["counts"]["lead_added"] == 1
        assert users["agentC"]["counts"]["lead_transfer"] == 1
        assert users["staffS"]["counts"]["status_updated"] == 1

        # same recipients as the ledger
        for user_id in ("staffS", "agentC"):
            target = _db_op(db.targets.find_one({"assigned": user_id}))
            assert target["achieved"] == users[user_id]["won"]

    def test_visit_store_counted(self, ctx):
        lead = _make_lead(ctx("staffT"), "9200000002")
        _db_op(lead_state_machine.update_status(
            lead["id"], LeadStatusUpdate(enquire_status="visit store"), ctx("staffT")
        ))
        report = _db_op(reporting.staff_report(ReportFilter(), ctx("managerA")))
        users = {u["user_id"]: u for u in report["users"]}
        assert users["staffT"]["visited"] == 1
        assert users["staffT"]["won"] == 0

    def test_grouped_by_manager(self, ctx):
        _make_lead(ctx("staffS"), "9200000003")
        _make_lead(ctx("staffT"), "9200000004")
        _make_lead(ctx("staffU"), "9200000005")
        report = _db_op(reporting.staff_report(ReportFilter(), ctx("root")))
        groups = {g["manager_id"]: g for g in report["managers"]}
        assert groups["managerA"]["counts"]["lead_added"] == 2
        assert sorted(groups["managerA"]["users"]) == ["staffS", "staffT"]
        assert groups["managerB"]["counts"]["lead_added"] == 1
        assert groups["managerA"]["manager_name"] == "managera"

    def test_manager_scope(self, ctx):
        _make_lead(ctx("staffS"), "9200000006")
        _make_lead(ctx("staffU"), "9200000007")
        report = _db_op(reporting.staff_report(ReportFilter(), ctx("managerB")))
        assert [u["user_id"] for u in report["users"]] == ["staffU"]


class TestLeadStatistics:
    def test_counts(self, ctx):
        _make_lead(ctx("staffS"), "9300000001")
        lead = _make_lead(ctx("staffS"), "9300000002", source="walkin", purpose="service request")
        _db_op(lead_state_machine.update_status(
            lead["id"], LeadStatusUpdate(enquire_status="quotation shared"), ctx("staffS")
        ))
        _make_lead(ctx("staffU"), "9300000003")

        stats = _db_op(reporting.lead_statistics(ReportFilter(), ctx("managerA")))
        assert stats["total"] == 2
        assert stats["enquire_status"]["new"] == 1
        assert stats["enquire_status"]["quotation_shared"] == 1
        assert stats["enquire_status"]["won"] == 0
        assert stats["source"]["walkin"] == 1
        assert stats["source"]["instagram"] == 1
        assert stats["purpose"]["service_request"] == 1
        assert stats["progress"]["granularity"] == "daily"
        assert sum(p["count"] for p in stats["progress"]["series"]) == 2

    def test_admin_sees_all(self, ctx):
        _make_lead(ctx("staffS"), "9300000004")
        _make_lead(ctx("staffU"), "9300000005")
        stats = _db_op(reporting.lead_statistics(ReportFilter(), ctx("ops")))
        assert stats["total"] == 2

    def test_staff_forbidden(self, ctx):
        with pytest.raises(Forbidden):
            _db_op(reporting.lead_statistics(ReportFilter(), ctx("staffS")))


class TestCallReport:
    def test_outcomes_by_assignee(self, ctx):
        lead_1 = _make_lead(ctx("staffS"), "9400000001")
        lead_2 = _make_lead(ctx("staffS"), "9400000002")
        lead_3 = _make_lead(ctx("staffT"), "9400000003")

        t1 = _db_op(task_linkage.create_task(TaskCreate(lead=lead_1["id"], category="call", due=_in_days(0)), ctx("staffS")))
        t2 = _db_op(task_linkage.create_task(TaskCreate(lead=lead_2["id"], category="call", due=_in_days(0)), ctx("staffS")))
        _db_op(task_linkage.create_task(TaskCreate(lead=lead_3["id"], category="call", due=_in_days(0)), ctx("staffT")))

        _db_op(task_linkage.complete_task(TaskComplete(task_id=t1["id"], call_status="connected"), ctx("staffS")))
        _db_op(task_linkage.complete_task(
            TaskComplete(task_id=t2["id"], call_status="not connected", followup_date=_in_days(5)), ctx("staffS")
        ))

        report = _db_op(reporting.call_report(
            ReportFilter(start_date=_in_days(-1), end_date=_in_days(1)), ctx("managerA")
        ))
        assert report["overall"]["total"] == 3
        assert report["overall"]["connected"] == 1
        assert report["overall"]["follow_up_scheduled"] == 1
        assert report["overall"]["not_updated"] == 1

        rows = {r["user_id"]: r for r in report["by_assignee"]}
        assert rows["staffS"]["total"] == 2
        assert rows["staffT"]["not_updated"] == 1

    def test_staff_sees_own(self, ctx):
        lead = _make_lead(ctx("staffT"), "9400000004")
        _db_op(task_linkage.create_task(TaskCreate(lead=lead["id"], category="call", due=_in_days(0)), ctx("staffT")))
        report = _db_op(reporting.call_report(ReportFilter(), ctx("staffS")))
        assert report["overall"]["total"] == 0

    def test_staff_own_report_leaves_out_manager_calls(self, ctx):
        lead_s = _make_lead(ctx("staffS"), "9400000005")
        lead_m = _make_lead(ctx("managerA"), "9400000006")
        _db_op(task_linkage.create_task(TaskCreate(lead=lead_s["id"], category="call", due=_in_days(0)), ctx("staffS")))
        _db_op(task_linkage.create_task(
            TaskCreate(lead=lead_m["id"], assigned="managerA", category="call", due=_in_days(0)), ctx("managerA")
        ))

        report = _db_op(reporting.call_report(ReportFilter(staff="staffS"), ctx("staffS")))
        assert report["overall"]["total"] == 1
        assert [r["user_id"] for r in report["by_assignee"]] == ["staffS"]

    def test_staff_cannot_query_colleague(self, ctx):
        with pytest.raises(Forbidden):
            _db_op(reporting.call_report(ReportFilter(staff="staffT"), ctx("staffS")))

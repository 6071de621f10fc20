"""
LeadFlow CRM - Visibility predicates (pure functions, no DB)
Run: cd backend && pytest tests/test_visibility.py -v
"""

from models.user import RequesterContext
from services import visibility


ADMIN = RequesterContext(user_id="root", privilege="admin", second_privilege="super", username="root")
REGULAR_ADMIN = RequesterContext(user_id="ops", privilege="admin", username="ops")
MANAGER = RequesterContext(user_id="managerA", privilege="manager", username="managera")
STAFF = RequesterContext(user_id="staffS", privilege="staff", manager_id="managerA", username="staffs")
AGENT = RequesterContext(user_id="agentC", privilege="staff", second_privilege="call-center", username="agentc")

BRANCH_A = ["staffS", "staffT"]


class TestLeadScope:
    def test_admin_unrestricted(self):
        assert visibility.lead_scope(ADMIN, []) == {}

    def test_admin_explicit_staff(self):
        assert visibility.lead_scope(ADMIN, [], staff="staffU") == {"handled_by": "staffU"}

    def test_admin_explicit_manager_covers_branch(self):
        q = visibility.lead_scope(ADMIN, [], manager="managerA", explicit_manager_staff_ids=BRANCH_A)
        assert q == {"$or": [
            {"manager": "managerA"},
            {"handled_by": {"$in": ["staffS", "staffT", "managerA"]}},
        ]}

    def test_manager_branch(self):
        q = visibility.lead_scope(MANAGER, BRANCH_A)
        assert q == {"$or": [
            {"manager": "managerA"},
            {"handled_by": {"$in": ["staffS", "staffT", "managerA"]}},
        ]}

    def test_manager_narrowed_by_staff(self):
        q = visibility.lead_scope(MANAGER, BRANCH_A, staff="staffT")
        assert q["$and"][1] == {"handled_by": "staffT"}

    def test_staff_only_own(self):
        assert visibility.lead_scope(STAFF, []) == {"handled_by": "staffS"}


class TestPeopleScope:
    def test_staff_sees_self_and_manager_tasks(self):
        assert visibility.task_scope(STAFF, []) == {"assigned": {"$in": ["staffS", "managerA"]}}

    def test_staff_narrowed_to_self(self):
        assert visibility.task_scope(STAFF, [], staff="staffS") == {"assigned": "staffS"}
        assert visibility.task_scope(STAFF, [], staff="staffT") == {"assigned": {"$in": []}}

    def test_agent_without_manager_sees_self_only(self):
        assert visibility.activity_scope(AGENT, []) == {"activator": {"$in": ["agentC"]}}

    def test_manager_staff_outside_branch_matches_nothing(self):
        assert visibility.task_scope(MANAGER, BRANCH_A, staff="staffU") == {"assigned": {"$in": []}}

    def test_manager_default_branch(self):
        q = visibility.activity_scope(MANAGER, BRANCH_A)
        assert q == {"activator": {"$in": ["staffS", "staffT", "managerA"]}}


class TestSingleDocument:
    def test_manager_sees_lead_of_own_branch_handled_elsewhere(self):
        lead = {"manager": "managerA", "handled_by": "staffU"}
        assert visibility.can_view_lead(MANAGER, lead, BRANCH_A)

    def test_staff_cannot_see_colleague_lead(self):
        lead = {"manager": "managerA", "handled_by": "staffT"}
        assert not visibility.can_view_lead(STAFF, lead, [])

    def test_staff_sees_manager_task(self):
        assert visibility.can_view_task(STAFF, {"assigned": "managerA"}, [])
        assert not visibility.can_view_task(STAFF, {"assigned": "staffT"}, [])


class TestTransferTargets:
    def test_nobody_transfers_to_admin(self):
        target = {"id": "ops", "privilege": "admin"}
        for ctx in (ADMIN, MANAGER, STAFF, AGENT):
            assert not visibility.can_transfer_to(ctx, target, BRANCH_A)

    def test_manager_to_any_manager(self):
        assert visibility.can_transfer_to(MANAGER, {"id": "managerB", "privilege": "manager"}, BRANCH_A)

    def test_manager_not_to_other_branch_staff(self):
        assert not visibility.can_transfer_to(MANAGER, {"id": "staffU", "privilege": "staff"}, BRANCH_A)

    def test_staff_stays_in_branch(self):
        assert visibility.can_transfer_to(STAFF, {"id": "managerA", "privilege": "manager"}, BRANCH_A)
        assert visibility.can_transfer_to(STAFF, {"id": "staffT", "privilege": "staff"}, BRANCH_A)
        assert not visibility.can_transfer_to(STAFF, {"id": "managerB", "privilege": "manager"}, BRANCH_A)

    def test_call_center_to_any_manager(self):
        assert visibility.can_transfer_to(AGENT, {"id": "managerB", "privilege": "manager"}, [])

    def test_call_center_not_to_staff_of_other_branches(self):
        assert not visibility.can_transfer_to(AGENT, {"id": "staffS", "privilege": "staff"}, [])
        q = visibility.transfer_target_query(AGENT, [])
        assert q["$and"][1] == {"$or": [{"privilege": "manager"}, {"id": {"$in": []}}]}


class TestOwnerScope:
    def test_super_admin_sees_all(self):
        assert visibility.owner_scope(ADMIN, "requester") == {}
        assert visibility.owner_scope(ADMIN, "requester", "staffS") == {"requester": "staffS"}

    def test_regular_admin_sees_own(self):
        assert visibility.owner_scope(REGULAR_ADMIN, "requester", "staffS") == {"requester": "ops"}

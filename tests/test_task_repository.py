"""
tests/test_task_repository.py -- Tests for TaskRepository and TaskStore.

Runs against a real in-memory database so the SQL visibility filter, the
(id, organization_id) lookups and the cascade rules are all exercised.

Coverage:
  - The Acme walkthrough: owner creates and assigns, member sees only own work
  - Cross-tenant reads, updates and deletes are NotFound
  - Partial update: absent fields untouched, null clears, title/completed required
  - Assignee rules: member self-assign only, no cross-org assignee
  - Delete rules under both policy variants
  - Creator and assignee display names
"""

from __future__ import annotations

import pytest

from audit.models import AuditAction
from auth.policy import SHARED_TASKS_POLICY
from core.errors import Forbidden, NotFound
from tests.conftest import Org, Services, build_services, seed_org


class TestAcmeScenario:
    """Alice (OWNER), Bob (ADMIN) and Carol (MEMBER) share one board."""

    def test_member_sees_only_involved_tasks(self, services: Services, acme: Org) -> None:
        for_carol = services.tasks.create(acme.owner_actor, "For Carol", assignee_id=acme.member.id)
        for_bob = services.tasks.create(acme.owner_actor, "For Bob", assignee_id=acme.admin.id)
        by_carol = services.tasks.create(acme.member_actor, "Carol's own")

        visible = {t.id for t in services.tasks.list(acme.member_actor)}
        assert visible == {for_carol.id, by_carol.id}

        everything = {t.id for t in services.tasks.list(acme.admin_actor)}
        assert everything == {for_carol.id, for_bob.id, by_carol.id}

        with pytest.raises(Forbidden):
            services.tasks.get(acme.member_actor, for_bob.id)

    def test_reassignment_makes_task_visible_to_member(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.admin_actor, "Ship v1")
        assert task.assignee_id is None
        assert services.tasks.list(acme.member_actor) == []

        services.tasks.update(acme.owner_actor, task.id, {"assignee_id": acme.member.id})

        visible = services.tasks.list(acme.member_actor)
        assert [t.id for t in visible] == [task.id]
        assert visible[0].assignee_name == "Carol Member"
        assert services.tasks.get(acme.member_actor, task.id).title == "Ship v1"

    def test_member_completes_assigned_task(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "For Carol", assignee_id=acme.member.id)
        updated = services.tasks.update(acme.member_actor, task.id, {"completed": True})
        assert updated.completed is True
        assert updated.title == "For Carol"

    def test_member_cannot_delete_assigned_task(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "For Carol", assignee_id=acme.member.id)
        with pytest.raises(Forbidden):
            services.tasks.delete(acme.member_actor, task.id)
        assert services.task_store.get(task.id, acme.organization_id) is not None

    def test_member_deletes_own_task(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.member_actor, "Carol's own")
        services.tasks.delete(acme.member_actor, task.id)
        with pytest.raises(NotFound):
            services.tasks.get(acme.owner_actor, task.id)

    def test_names_are_resolved(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Named", assignee_id=acme.member.id)
        fetched = services.tasks.get(acme.owner_actor, task.id)
        assert fetched.created_by_name == "Alice Owner"
        assert fetched.assignee_name == "Carol Member"

    def test_unassigned_task_has_no_assignee(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.member_actor, "Unassigned")
        assert task.assignee_id is None
        assert task.assignee_name is None
        assert task.created_by_id == acme.member.id


class TestTenancy:
    def test_cross_tenant_get_is_not_found(self, services: Services, acme: Org, globex: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Acme secret")
        with pytest.raises(NotFound):
            services.tasks.get(globex.owner_actor, task.id)

    def test_cross_tenant_update_and_delete_are_not_found(self, services: Services, acme: Org, globex: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Acme secret")
        with pytest.raises(NotFound):
            services.tasks.update(globex.owner_actor, task.id, {"title": "pwned"})
        with pytest.raises(NotFound):
            services.tasks.delete(globex.owner_actor, task.id)
        assert services.tasks.get(acme.owner_actor, task.id).title == "Acme secret"

    def test_lists_never_cross_tenants(self, services: Services, acme: Org, globex: Org) -> None:
        services.tasks.create(acme.owner_actor, "Acme task")
        globex_task = services.tasks.create(globex.owner_actor, "Globex task")
        assert [t.id for t in services.tasks.list(globex.owner_actor)] == [globex_task.id]

    def test_cross_org_assignee_is_forbidden(self, services: Services, acme: Org, globex: Org) -> None:
        with pytest.raises(Forbidden):
            services.tasks.create(acme.owner_actor, "Outsourced", assignee_id=globex.member.id)
        task = services.tasks.create(acme.owner_actor, "Mine")
        with pytest.raises(Forbidden):
            services.tasks.update(acme.owner_actor, task.id, {"assignee_id": globex.member.id})

    def test_unknown_task_is_not_found(self, services: Services, acme: Org) -> None:
        with pytest.raises(NotFound):
            services.tasks.update(acme.owner_actor, "no-such-task", {"assignee_id": acme.member.id})


class TestPartialUpdate:
    def test_absent_fields_are_untouched(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(
            acme.owner_actor, "Write docs", description="Full guide", assignee_id=acme.admin.id
        )
        updated = services.tasks.update(acme.owner_actor, task.id, {"completed": True})
        assert updated.description == "Full guide"
        assert updated.assignee_id == acme.admin.id

    def test_null_assignee_unassigns(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Write docs", assignee_id=acme.admin.id)
        updated = services.tasks.update(acme.owner_actor, task.id, {"assignee_id": None})
        assert updated.assignee_id is None

    def test_null_description_clears(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Write docs", description="draft")
        assert services.tasks.update(acme.owner_actor, task.id, {"description": None}).description is None

    def test_title_cannot_be_cleared(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Write docs")
        with pytest.raises(ValueError):
            services.tasks.update(acme.owner_actor, task.id, {"title": None})

    def test_unknown_field_rejected(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Write docs")
        with pytest.raises(ValueError):
            services.tasks.update(acme.owner_actor, task.id, {"organization_id": "elsewhere"})

    def test_member_cannot_reassign_to_someone_else(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.member_actor, "Mine")
        with pytest.raises(Forbidden):
            services.tasks.update(acme.member_actor, task.id, {"assignee_id": acme.admin.id})
        assert services.tasks.update(acme.member_actor, task.id, {"assignee_id": acme.member.id}).assignee_id == (
            acme.member.id
        )

    def test_member_cannot_create_for_others(self, services: Services, acme: Org) -> None:
        with pytest.raises(Forbidden):
            services.tasks.create(acme.member_actor, "Delegated", assignee_id=acme.admin.id)

    def test_updates_are_audited(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Write docs")
        services.tasks.update(acme.owner_actor, task.id, {"title": "Write better docs"})
        latest = services.audit.list_for_organization(acme.organization_id)[0]
        assert latest.action is AuditAction.UPDATE_TASK
        assert latest.entity_id == task.id
        assert latest.metadata == {"changes": {"title": "Write better docs"}}

    def test_empty_update_writes_nothing(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Write docs")
        before = services.audit.list_for_organization(acme.organization_id)

        unchanged = services.tasks.update(acme.owner_actor, task.id, {})

        assert unchanged.updated_at == task.updated_at
        assert unchanged.title == "Write docs"
        assert services.audit.list_for_organization(acme.organization_id) == before

    def test_empty_update_still_checks_access(self, services: Services, acme: Org) -> None:
        task = services.tasks.create(acme.owner_actor, "Private")
        with pytest.raises(Forbidden):
            services.tasks.update(acme.member_actor, task.id, {})


class TestSharedPolicy:
    """Organization-wide visibility for members, no member deletes."""

    @pytest.fixture
    def shared(self, settings, engine) -> Services:
        return build_services(settings, engine, policy=SHARED_TASKS_POLICY)

    def test_member_sees_and_edits_whole_board(self, shared: Services) -> None:
        org = seed_org(shared, "Acme", "acme.test")
        task = shared.tasks.create(org.owner_actor, "For Bob", assignee_id=org.admin.id)
        assert [t.id for t in shared.tasks.list(org.member_actor)] == [task.id]
        assert shared.tasks.update(org.member_actor, task.id, {"completed": True}).completed

    def test_member_deletes_nothing(self, shared: Services) -> None:
        org = seed_org(shared, "Acme", "acme.test")
        task = shared.tasks.create(org.member_actor, "Carol's own")
        with pytest.raises(Forbidden):
            shared.tasks.delete(org.member_actor, task.id)
        shared.tasks.delete(org.admin_actor, task.id)

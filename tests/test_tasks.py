"""Tests for the task access engine."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from taskscope.models import TaskStatus
from taskscope.schemas import CreateTaskRequest, TaskQuery, UpdateTaskRequest
from taskscope.services import TaskService
from taskscope.shared.auth.rbac import GlobalRole, OrgRole
from taskscope.shared.errors import ForbiddenError, InvalidInputError, NotFoundError


@pytest.fixture
async def acme(make_user, make_org, add_member):
    """Organization with one owner, one admin and two viewers."""
    owner, admin, viewer, other_viewer = (
        await make_user(), await make_user(), await make_user(), await make_user()
    )
    org = await make_org("Acme")
    await add_member(org, owner, OrgRole.OWNER)
    await add_member(org, admin, OrgRole.ADMIN)
    await add_member(org, viewer, OrgRole.VIEWER)
    await add_member(org, other_viewer, OrgRole.VIEWER)
    return {"org": org, "owner": owner, "admin": admin, "viewer": viewer, "other_viewer": other_viewer}


class TestCreate:
    async def test_admin_creates_task(self, session, acme, identity_of):
        task = await TaskService(session).create(
            CreateTaskRequest(organization_id=acme["org"].id, title="Ship it"),
            identity_of(acme["admin"]),
        )
        assert task.created_by_id == acme["admin"].id
        assert task.status == "todo"
        assert task.priority == "medium"

    async def test_viewer_cannot_create(self, session, acme, identity_of):
        with pytest.raises(ForbiddenError):
            await TaskService(session).create(
                CreateTaskRequest(organization_id=acme["org"].id, title="Nope"),
                identity_of(acme["viewer"]),
            )

    async def test_organization_required(self, session, acme, identity_of):
        with pytest.raises(InvalidInputError):
            await TaskService(session).create(CreateTaskRequest(title="Orphan"), identity_of(acme["owner"]))

    async def test_missing_org_not_found_for_super_admin(self, session, make_user, identity_of):
        root = await make_user(role=GlobalRole.SUPER_ADMIN)
        with pytest.raises(NotFoundError):
            await TaskService(session).create(
                CreateTaskRequest(organization_id=uuid.uuid4(), title="Ghost"), identity_of(root)
            )

    async def test_assignee_must_be_member(self, session, acme, make_user, identity_of):
        outsider = await make_user()
        with pytest.raises(InvalidInputError):
            await TaskService(session).create(
                CreateTaskRequest(organization_id=acme["org"].id, title="X", assigned_to_id=outsider.id),
                identity_of(acme["owner"]),
            )


class TestViewerWriteRestriction:
    async def test_viewer_changes_status_but_not_title(self, session, acme, make_task, identity_of):
        """A viewer moves their task along but cannot edit anything else."""
        task = await make_task(acme["org"], acme["owner"], assignee=acme["viewer"])
        service = TaskService(session)
        viewer = identity_of(acme["viewer"])

        updated = await service.update_status(task.id, TaskStatus.IN_PROGRESS, viewer)
        assert updated.status == "in_progress"

        with pytest.raises(ForbiddenError):
            await service.update(task.id, UpdateTaskRequest(title="x"), viewer)

    async def test_viewer_update_with_status_only(self, session, acme, make_task, identity_of):
        task = await make_task(acme["org"], acme["owner"], assignee=acme["viewer"])

        updated = await TaskService(session).update(
            task.id, UpdateTaskRequest(status=TaskStatus.DONE), identity_of(acme["viewer"])
        )
        assert updated.status == "done"

    async def test_status_transitions_in_any_order(self, session, acme, make_task, identity_of):
        task = await make_task(acme["org"], acme["owner"], assignee=acme["viewer"], status="done")

        updated = await TaskService(session).update_status(
            task.id, TaskStatus.TODO, identity_of(acme["viewer"])
        )
        assert updated.status == "todo"

    async def test_viewer_cannot_touch_unassigned_task(self, session, acme, make_task, identity_of):
        task = await make_task(acme["org"], acme["owner"], assignee=acme["other_viewer"])

        with pytest.raises(ForbiddenError):
            await TaskService(session).update_status(task.id, TaskStatus.DONE, identity_of(acme["viewer"]))

    async def test_viewer_cannot_delete(self, session, acme, make_task, identity_of):
        task = await make_task(acme["org"], acme["owner"], assignee=acme["viewer"])

        with pytest.raises(ForbiddenError):
            await TaskService(session).remove(task.id, identity_of(acme["viewer"]))

    async def test_admin_updates_any_field(self, session, acme, make_task, identity_of):
        task = await make_task(acme["org"], acme["owner"])

        updated = await TaskService(session).update(
            task.id,
            UpdateTaskRequest(title="Renamed", priority="urgent", assigned_to_id=acme["viewer"].id),
            identity_of(acme["admin"]),
        )
        assert updated.title == "Renamed"
        assert updated.priority == "urgent"
        assert updated.assigned_to_id == acme["viewer"].id


class TestReadGate:
    async def test_missing_task(self, session, acme, identity_of):
        with pytest.raises(NotFoundError):
            await TaskService(session).find_one(uuid.uuid4(), identity_of(acme["owner"]))

    async def test_outsider_forbidden(self, session, acme, make_task, make_user, identity_of):
        task = await make_task(acme["org"], acme["owner"])
        outsider = await make_user()

        with pytest.raises(ForbiddenError):
            await TaskService(session).find_one(task.id, identity_of(outsider))

    async def test_assignment_alone_does_not_grant_access(
        self, session, acme, make_task, make_user, identity_of
    ):
        """A non-member assignee still needs membership in the task's org."""
        outsider = await make_user()
        task = await make_task(acme["org"], acme["owner"], assignee=outsider)

        with pytest.raises(ForbiddenError):
            await TaskService(session).find_one(task.id, identity_of(outsider))

    async def test_super_admin_reads_anything(self, session, acme, make_task, make_user, identity_of):
        task = await make_task(acme["org"], acme["owner"])
        root = await make_user(role=GlobalRole.SUPER_ADMIN)

        assert (await TaskService(session).find_one(task.id, identity_of(root))).id == task.id

    async def test_admin_deletes(self, session, acme, make_task, identity_of):
        task = await make_task(acme["org"], acme["owner"])
        service = TaskService(session)

        await service.remove(task.id, identity_of(acme["admin"]))

        with pytest.raises(NotFoundError):
            await service.find_one(task.id, identity_of(acme["owner"]))


class TestFindAll:
    async def test_viewer_sees_only_assigned(self, session, acme, make_task, identity_of):
        mine = await make_task(acme["org"], acme["owner"], assignee=acme["viewer"])
        await make_task(acme["org"], acme["owner"], assignee=acme["other_viewer"])
        await make_task(acme["org"], acme["owner"])

        page = await TaskService(session).find_all(identity_of(acme["viewer"]), TaskQuery())

        assert [t.id for t in page.data] == [mine.id]
        assert page.total == 1

    async def test_admin_sees_whole_org_only(
        self, session, acme, make_task, make_org, add_member, make_user, identity_of
    ):
        other_org = await make_org("Other")
        stranger = await make_user()
        await add_member(other_org, stranger, OrgRole.OWNER)
        await make_task(acme["org"], acme["owner"])
        await make_task(acme["org"], acme["owner"], assignee=acme["viewer"])
        await make_task(other_org, stranger)

        page = await TaskService(session).find_all(identity_of(acme["admin"]), TaskQuery())

        assert page.total == 2
        assert {t.organization_id for t in page.data} == {acme["org"].id}

    async def test_mixed_roles(
        self, session, acme, make_task, make_org, add_member, make_user, identity_of
    ):
        """Admin in one org and viewer in another: everything in the first, assigned in the second."""
        other_org = await make_org("Other")
        other_owner = await make_user()
        await add_member(other_org, other_owner, OrgRole.OWNER)
        await add_member(other_org, acme["admin"], OrgRole.VIEWER)
        await make_task(acme["org"], acme["owner"])
        assigned = await make_task(other_org, other_owner, assignee=acme["admin"])
        await make_task(other_org, other_owner)

        page = await TaskService(session).find_all(identity_of(acme["admin"]), TaskQuery())

        assert page.total == 2
        assert assigned.id in {t.id for t in page.data}

    async def test_listing_matches_read_gate(
        self, session, acme, make_task, make_org, add_member, make_user, identity_of
    ):
        """Every listed task is also readable one by one."""
        other_org = await make_org("Other")
        await add_member(other_org, acme["viewer"], OrgRole.ADMIN)
        await make_task(acme["org"], acme["owner"], assignee=acme["viewer"])
        await make_task(acme["org"], acme["owner"])
        await make_task(other_org, acme["viewer"])
        service = TaskService(session)

        for user in (acme["owner"], acme["admin"], acme["viewer"], acme["other_viewer"]):
            identity = identity_of(user)
            page = await service.find_all(identity, TaskQuery())
            for task in page.data:
                assert (await service.find_one(task.id, identity)).id == task.id

    async def test_no_memberships_sees_assigned(self, session, acme, make_task, make_user, identity_of):
        loner = await make_user()
        page = await TaskService(session).find_all(identity_of(loner), TaskQuery())
        assert page.total == 0
        assert page.data == []

    async def test_super_admin_sees_all(self, session, acme, make_task, make_user, identity_of):
        await make_task(acme["org"], acme["owner"])
        await make_task(acme["org"], acme["owner"])
        root = await make_user(role=GlobalRole.SUPER_ADMIN)

        page = await TaskService(session).find_all(identity_of(root), TaskQuery())
        assert page.total == 2

    async def test_filters_combine(self, session, acme, make_task, identity_of):
        await make_task(acme["org"], acme["owner"], title="Fix login bug", priority="high")
        await make_task(acme["org"], acme["owner"], title="Write docs", priority="high")
        await make_task(
            acme["org"], acme["owner"], title="Refactor", description="the LOGIN flow", priority="low"
        )

        page = await TaskService(session).find_all(
            identity_of(acme["owner"]), TaskQuery(search="login", priority="high")
        )
        assert [t.title for t in page.data] == ["Fix login bug"]

    async def test_search_matches_description(self, session, acme, make_task, identity_of):
        await make_task(acme["org"], acme["owner"], title="Refactor", description="the LOGIN flow")

        page = await TaskService(session).find_all(identity_of(acme["owner"]), TaskQuery(search="login"))
        assert page.total == 1

    async def test_search_treats_wildcards_literally(self, session, acme, make_task, identity_of):
        """% and _ in the search text are matched as characters, not patterns."""
        await make_task(acme["org"], acme["owner"], title="Ship release")
        await make_task(acme["org"], acme["owner"], title="Discount 50% off")
        service = TaskService(session)
        owner = identity_of(acme["owner"])

        percent = await service.find_all(owner, TaskQuery(search="50%"))
        bare_percent = await service.find_all(owner, TaskQuery(search="%"))
        underscore = await service.find_all(owner, TaskQuery(search="_"))

        assert [t.title for t in percent.data] == ["Discount 50% off"]
        assert [t.title for t in bare_percent.data] == ["Discount 50% off"]
        assert underscore.total == 0

    async def test_sort_by_priority_uses_severity(self, session, acme, make_task, identity_of):
        for priority in ("medium", "urgent", "low", "high"):
            await make_task(acme["org"], acme["owner"], title=priority, priority=priority)

        page = await TaskService(session).find_all(
            identity_of(acme["owner"]), TaskQuery(sort="priority", order="asc")
        )
        assert [t.priority for t in page.data] == ["low", "medium", "high", "urgent"]

    async def test_sort_by_due_date(self, session, acme, make_task, identity_of):
        now = datetime.now(timezone.utc)
        await make_task(acme["org"], acme["owner"], title="later", due_date=now + timedelta(days=2))
        await make_task(acme["org"], acme["owner"], title="sooner", due_date=now + timedelta(days=1))

        page = await TaskService(session).find_all(
            identity_of(acme["owner"]), TaskQuery(sort="dueDate", order="ASC")
        )
        assert [t.title for t in page.data] == ["sooner", "later"]

    async def test_page_size_is_capped(self, session, acme, make_task, identity_of):
        for i in range(3):
            await make_task(acme["org"], acme["owner"], title=f"t{i}")

        page = await TaskService(session).find_all(identity_of(acme["owner"]), TaskQuery(page_size=500))
        assert page.page_size == 100
        assert page.total == 3

    async def test_pagination(self, session, acme, make_task, identity_of):
        for i in range(5):
            await make_task(acme["org"], acme["owner"], title=f"t{i}")
        service = TaskService(session)
        owner = identity_of(acme["owner"])

        first = await service.find_all(owner, TaskQuery(page=1, page_size=2))
        third = await service.find_all(owner, TaskQuery(page=3, page_size=2))

        assert len(first.data) == 2
        assert len(third.data) == 1
        assert first.total == third.total == 5

import pytest

from app.core.access_guard import (
    AdminPolicy,
    AuthorPolicy,
    PaperContext,
    ReviewerPolicy,
    authorize,
    load_authorized,
    policy_for,
)
from app.core.errors import Forbidden, NotFound
from app.core.role_matrix import can_perform_action, list_allowed_actions, normalize_role
from app.models.paper import PaperAction, Role

PRIMARY = {"id": "u-primary", "email": "primary@example.org", "role": "AUTHOR"}
CORRESPONDING = {"id": "u-corr", "email": "Corr@Example.org", "role": "AUTHOR"}
STRANGER = {"id": "u-x", "email": "x@example.org", "role": "AUTHOR"}
REVIEWER = {"id": "u-rev", "email": "rev@example.org", "role": "REVIEWER"}
OTHER_REVIEWER = {"id": "u-rev2", "email": "rev2@example.org", "role": "REVIEWER"}
ADMIN = {"id": "u-admin", "email": "admin@example.org", "role": "ADMIN"}


def _ctx() -> PaperContext:
    return PaperContext(
        paper={"id": "p1", "author_id": "u-primary", "status": "UNDER_REVIEW"},
        authors=[
            {"name": "Primary", "email": "primary@example.org", "is_corresponding": False},
            {"name": "Corr", "email": " corr@example.org ", "is_corresponding": True},
            {"name": "Plain", "email": "x@example.org", "is_corresponding": False},
        ],
        reviewer_ids=frozenset({"u-rev"}),
    )


def test_role_matrix_separates_roles():
    assert can_perform_action(action=PaperAction.APPROVE, role="ADMIN") is True
    assert can_perform_action(action=PaperAction.APPROVE, role="AUTHOR") is False
    assert can_perform_action(action=PaperAction.SUBMIT_REVIEW, role="reviewer") is True
    assert can_perform_action(action=PaperAction.SUBMIT, role="REVIEWER") is False
    assert can_perform_action(action=PaperAction.VIEW, role="editor") is False


def test_list_allowed_actions_and_normalize_role():
    assert "approve" in list_allowed_actions(["ADMIN"])
    assert "resubmit" not in list_allowed_actions(["REVIEWER"])
    assert normalize_role(" admin ") == Role.ADMIN
    assert normalize_role("guest") is None


def test_policy_for_dispatches_on_role():
    assert isinstance(policy_for(ADMIN), AdminPolicy)
    assert isinstance(policy_for(PRIMARY), AuthorPolicy)
    assert isinstance(policy_for(REVIEWER), ReviewerPolicy)
    with pytest.raises(Forbidden):
        policy_for({"id": "u", "role": "GUEST"})


def test_author_visibility_primary_or_corresponding_email():
    ctx = _ctx()
    policy = AuthorPolicy()
    assert policy.can_view(ctx, PRIMARY)
    # 邮箱大小写 / 首尾空格不敏感
    assert policy.can_view(ctx, CORRESPONDING)
    # 非通讯作者的共同作者不可见
    assert not policy.can_view(ctx, STRANGER)


def test_reviewer_visibility_requires_assignment():
    ctx = _ctx()
    assert ReviewerPolicy().can_view(ctx, REVIEWER)
    assert not ReviewerPolicy().can_view(ctx, OTHER_REVIEWER)


def test_admin_sees_everything():
    assert AdminPolicy().can_act(PaperAction.DELETE, _ctx(), ADMIN)


def test_authorize_role_never_allowed_is_forbidden():
    with pytest.raises(Forbidden):
        authorize(PaperAction.APPROVE, _ctx(), PRIMARY)


def test_authorize_invisible_paper_is_not_found():
    with pytest.raises(NotFound):
        authorize(PaperAction.SUBMIT_FEEDBACK, _ctx(), STRANGER)
    with pytest.raises(NotFound):
        authorize(PaperAction.SUBMIT_REVIEW, _ctx(), OTHER_REVIEWER)
    with pytest.raises(NotFound):
        authorize(PaperAction.VIEW, None, ADMIN)


def test_corresponding_author_cannot_resubmit():
    ctx = _ctx()
    assert authorize(PaperAction.SUBMIT_FEEDBACK, ctx, CORRESPONDING) is ctx
    with pytest.raises(Forbidden):
        authorize(PaperAction.RESUBMIT, ctx, CORRESPONDING)
    assert authorize(PaperAction.RESUBMIT, ctx, PRIMARY) is ctx


def test_load_authorized_reads_context_from_store(store):
    store.create("papers", {"id": "p1", "author_id": "u-primary", "status": "PENDING_REVIEW"})
    store.create("paper_authors", {"paper_id": "p1", "position": 1, "name": "B", "email": "corr@example.org", "is_corresponding": True})
    store.create("paper_authors", {"paper_id": "p1", "position": 0, "name": "A", "email": None, "is_corresponding": False})
    store.create("reviewer_assignments", {"paper_id": "p1", "reviewer_id": "u-rev"})

    ctx = load_authorized(store, "p1", PaperAction.SUBMIT_REVIEW, REVIEWER)
    assert [a["name"] for a in ctx.authors] == ["A", "B"]
    assert ctx.corresponding_emails() == ["corr@example.org"]

    with pytest.raises(NotFound):
        load_authorized(store, "missing", PaperAction.VIEW, ADMIN)

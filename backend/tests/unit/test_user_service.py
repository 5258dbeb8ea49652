import pytest

from app.core.errors import Conflict, NotFound, Unauthenticated
from app.core.security import verify_password
from app.models.paper import Role
from app.schemas.reviewer import ReviewerCreate
from app.schemas.user import RegisterRequest
from app.services.notification_service import CREDENTIALS_TEMPLATE
from app.services.user_service import UserService, provision_author_account, split_display_name


@pytest.fixture
def users(store) -> UserService:
    return UserService(store)


def _register(**overrides) -> RegisterRequest:
    values = dict(first_name="Ada", last_name="Lovelace", email="Ada@Example.org", password="secret12")
    values.update(overrides)
    return RegisterRequest(**values)


def test_register_author_hashes_password_and_hides_it(users, store):
    user = users.register_author(_register(middle_name="  "))

    assert user["role"] == "AUTHOR"
    assert user["email"] == "ada@example.org"
    assert user["middle_name"] is None
    assert "password_hash" not in user
    stored = store.find_by_id("users", user["id"])
    assert stored["password_hash"] != "secret12"
    assert verify_password("secret12", stored["password_hash"])


def test_register_duplicate_email_is_conflict(users):
    users.register_author(_register())
    with pytest.raises(Conflict) as exc:
        users.register_author(_register(email="ADA@example.org"))
    assert exc.value.detail == "User with this email already exists"


def test_authenticate_records_login(users, store):
    created = users.register_author(_register())
    user = users.authenticate(" ADA@example.org ", "secret12", ip_address="10.0.0.1", user_agent="pytest")

    assert user["id"] == created["id"]
    logs = store.find_many("login_logs", {"user_id": created["id"]})
    assert len(logs) == 1
    assert logs[0]["ip_address"] == "10.0.0.1"
    assert logs[0]["user_agent"] == "pytest"


def test_authenticate_failures_share_one_message(users, store):
    users.register_author(_register())
    with pytest.raises(Unauthenticated) as wrong_password:
        users.authenticate("ada@example.org", "nope")
    with pytest.raises(Unauthenticated) as unknown:
        users.authenticate("ghost@example.org", "secret12")
    assert wrong_password.value.detail == unknown.value.detail == "Invalid email or password"
    assert store.count("login_logs") == 0


def test_register_reviewer_emails_credentials(users, store):
    result = users.register_reviewer(ReviewerCreate(first_name="Rae", last_name="View", email="rae@example.org"))

    assert result.reviewer["role"] == "REVIEWER"
    assert result.reviewer["assignment_count"] == 0
    assert result.reviewer["review_count"] == 0
    intent = result.intents[0]
    assert intent.template == CREDENTIALS_TEMPLATE
    assert intent.recipient == "rae@example.org"
    stored = store.find_by_id("users", result.reviewer["id"])
    assert verify_password(intent.context["temporary_password"], stored["password_hash"])


def test_list_and_get_reviewers_with_counts(users, store, make_user):
    reviewer = make_user(Role.REVIEWER)
    make_user(Role.AUTHOR)
    store.create("reviewer_assignments", {"paper_id": "p1", "reviewer_id": reviewer["id"]})
    store.create("reviewer_assignments", {"paper_id": "p2", "reviewer_id": reviewer["id"]})
    store.create("reviews", {"paper_id": "p1", "reviewer_id": reviewer["id"], "comments": "ok", "recommendation": "ACCEPT"})

    listed = users.list_reviewers()
    assert [r["id"] for r in listed] == [reviewer["id"]]
    assert listed[0]["assignment_count"] == 2
    assert listed[0]["review_count"] == 1
    assert "password_hash" not in listed[0]

    assert users.get_reviewer(reviewer["id"])["review_count"] == 1


def test_get_reviewer_rejects_non_reviewers(users, make_user):
    author = make_user(Role.AUTHOR)
    with pytest.raises(NotFound):
        users.get_reviewer(author["id"])
    with pytest.raises(NotFound):
        users.get_reviewer("missing")


def test_split_display_name():
    assert split_display_name("Grace Brewster Hopper") == ("Grace Brewster", "Hopper")
    assert split_display_name("Plato") == ("Plato", "-")
    assert split_display_name("  ") == ("Author", "-")


def test_provision_author_account_is_idempotent(store, make_user):
    first = provision_author_account(store, email="Co@Example.org", name="Co Author", affiliation="MIT")
    assert first.created
    assert first.user["affiliation"] == "MIT"

    second = provision_author_account(store, email="co@example.org", name="Other Name")
    assert not second.created
    assert second.user["id"] == first.user["id"]

    reviewer = make_user(Role.REVIEWER, email="rev@example.org")
    reused = provision_author_account(store, email="rev@example.org", name="Rev")
    assert reused.user["role"] == "REVIEWER"
    assert reused.user["id"] == reviewer["id"]

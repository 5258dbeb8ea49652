import pytest
from httpx import AsyncClient

from app.models.paper import Role
from app.services.notification_service import CREDENTIALS_TEMPLATE
from conftest import API_PREFIX, auth_headers, pdf_file, submit_paper, token_for


@pytest.mark.asyncio
async def test_submission_to_acceptance(client: AsyncClient, make_user, mailer, store):
    """
    完整流程：投稿 -> 审批 -> 分配 -> 评审 -> 录用 -> camera-ready -> 缴费
    """
    admin = token_for(make_user(Role.ADMIN, email="admin@example.org"))
    author = token_for(make_user(Role.AUTHOR, email="author1@example.org"))
    reviewer_user = make_user(Role.REVIEWER, email="rev@example.org")
    reviewer = token_for(reviewer_user)

    paper = await submit_paper(client, author)
    pid = paper["id"]
    admin_paper = f"{API_PREFIX}/admin/papers/{pid}"

    assert (await client.patch(f"{admin_paper}/approve", headers=auth_headers(admin))).status_code == 200
    assigned = await client.post(f"{admin_paper}/assign", json={"reviewer_ids": [reviewer_user["id"]]}, headers=auth_headers(admin))
    assert assigned.json()["paper"]["status"] == "UNDER_REVIEW"
    review = await client.post(
        f"{API_PREFIX}/reviewer/papers/{pid}/review",
        json={"comments": "Clear and useful.", "recommendation": "ACCEPT"},
        headers=auth_headers(reviewer),
    )
    assert review.status_code == 201
    decided = await client.patch(f"{admin_paper}/status", json={"status": "ACCEPTED"}, headers=auth_headers(admin))
    assert decided.json()["paper"]["status"] == "ACCEPTED"
    camera = await client.post(f"{API_PREFIX}/author/papers/{pid}/camera-ready", files=pdf_file("final.pdf"), headers=auth_headers(author))
    assert camera.status_code == 200
    paid = await client.patch(f"{admin_paper}/payment", json={"payment_status": "PAID"}, headers=auth_headers(admin))
    assert paid.json()["paper"]["payment_status"] == "PAID"

    # 每位通讯作者对每个事件恰好收到一封邮件
    for email in ("author1@example.org", "charles@example.org"):
        subjects = [m["subject"] for m in mailer.to(email) if m["template"] != CREDENTIALS_TEMPLATE]
        assert len(subjects) == 4
        assert len(set(subjects)) == 4
    assert len(mailer.to("admin@example.org")) == 1
    assert len(mailer.to("rev@example.org")) == 1

    detail = await client.get(f"{API_PREFIX}/author/papers/{pid}", headers=auth_headers(author))
    body = detail.json()
    assert body["status"] == "ACCEPTED"
    assert body["camera_ready_url"]
    assert body["reviews"][0]["comments"] == "Clear and useful."
    assert body["reviews"][0].get("reviewer_id") is None
    assert store.count("reviews", {"paper_id": pid}) == 1


@pytest.mark.asyncio
async def test_revision_cycle(client: AsyncClient, make_user, mailer):
    """
    修改流程：REVISION_REQUIRED -> 重投 -> 再次评审 -> 拒稿
    """
    admin = token_for(make_user(Role.ADMIN, email="admin@example.org"))
    author = token_for(make_user(Role.AUTHOR, email="author1@example.org"))
    r1 = make_user(Role.REVIEWER, email="r1@example.org")
    r2 = make_user(Role.REVIEWER, email="r2@example.org")

    paper = await submit_paper(client, author)
    pid = paper["id"]
    admin_paper = f"{API_PREFIX}/admin/papers/{pid}"
    await client.patch(f"{admin_paper}/approve", headers=auth_headers(admin))
    await client.post(f"{admin_paper}/assign", json={"reviewer_ids": [r1["id"]]}, headers=auth_headers(admin))
    await client.patch(f"{admin_paper}/status", json={"status": "REVISION_REQUIRED"}, headers=auth_headers(admin))

    resubmitted = await client.post(f"{API_PREFIX}/author/papers/{pid}/resubmit", files=pdf_file("v2.pdf"), headers=auth_headers(author))
    assert resubmitted.json()["paper"]["status"] == "RESUBMITTED"
    assert any("resubmitted" in m["subject"].lower() for m in mailer.to("r1@example.org"))
    assert any("resubmitted" in m["subject"].lower() for m in mailer.to("admin@example.org"))

    again = await client.post(f"{admin_paper}/assign", json={"reviewer_ids": [r1["id"], r2["id"]]}, headers=auth_headers(admin))
    assert again.json()["paper"]["status"] == "UNDER_REVIEW"
    assert again.json()["assigned"] == [r2["id"]]

    rejected = await client.patch(f"{admin_paper}/status", json={"status": "REJECTED"}, headers=auth_headers(admin))
    assert rejected.json()["paper"]["status"] == "REJECTED"

    late = await client.post(f"{API_PREFIX}/author/papers/{pid}/resubmit", files=pdf_file("v3.pdf"), headers=auth_headers(author))
    assert late.status_code == 409


@pytest.mark.asyncio
async def test_mail_failure_does_not_fail_request(client: AsyncClient, make_user, mailer, store):
    admin = token_for(make_user(Role.ADMIN, email="admin@example.org"))
    author = token_for(make_user(Role.AUTHOR, email="author1@example.org"))
    mailer.fail_for.add("author1@example.org")

    paper = await submit_paper(client, author)
    response = await client.patch(f"{API_PREFIX}/admin/papers/{paper['id']}/approve", headers=auth_headers(admin))

    assert response.status_code == 200
    assert store.find_by_id("papers", paper["id"])["status"] == "PENDING_REVIEW"
    assert len(mailer.to("charles@example.org")) == 2

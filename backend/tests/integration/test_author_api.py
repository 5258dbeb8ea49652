import json

import pytest
from httpx import AsyncClient

from app.core.security import verify_password
from app.models.paper import Role
from app.services.notification_service import CREDENTIALS_TEMPLATE
from conftest import API_PREFIX, auth_headers, paper_form, pdf_file, submit_paper, token_for

SUBMIT_URL = f"{API_PREFIX}/author/papers"

@pytest.fixture
def author(make_user):
    return make_user(Role.AUTHOR, email="author1@example.org", first_name="Ada", last_name="Lovelace")

@pytest.fixture
def admin_token(make_user):
    return token_for(make_user(Role.ADMIN, email="admin@example.org"))

@pytest.mark.asyncio
async def test_submit_paper_multipart(client: AsyncClient, author, admin_token, mailer, store, storage):
    response = await client.post(
        SUBMIT_URL,
        data=paper_form(keywords='["graphs", "pruning", "graphs"]'),
        files=pdf_file("My Paper.pdf"),
        headers=auth_headers(token_for(author)),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["message"] == "Paper submitted successfully"
    paper = body["paper"]
    assert paper["status"] == "PENDING_APPROVAL"
    assert paper["payment_status"] == "UNPAID"
    assert paper["keywords"] == ["graphs", "pruning"]
    assert paper["author_id"] == author["id"]
    assert paper["file_url"].startswith("conference_papers/My_Paper-")
    assert paper["file_url"] in storage.files

    # 管理员收到投稿通知，通讯作者 Charles 收到账号开通邮件
    assert len(mailer.to("admin@example.org")) == 1
    credentials = mailer.to("charles@example.org")
    assert [m["template"] for m in credentials] == [CREDENTIALS_TEMPLATE]
    charles = store.find_one("users", {"email": "charles@example.org"})
    assert verify_password(credentials[0]["context"]["temporary_password"], charles["password_hash"])
    assert mailer.to("author1@example.org") == []

@pytest.mark.asyncio
async def test_submit_validation_errors(client: AsyncClient, author, store):
    headers = auth_headers(token_for(author))

    no_authors = await client.post(SUBMIT_URL, data=paper_form(authors=[]), files=pdf_file(), headers=headers)
    assert no_authors.status_code == 422
    assert no_authors.json()["detail"][0]["msg"] == "At least one author is required"

    bad_json = await client.post(SUBMIT_URL, data={**paper_form(), "authors": "{not json"}, files=pdf_file(), headers=headers)
    assert bad_json.status_code == 422

    corresponding_without_email = await client.post(
        SUBMIT_URL,
        data=paper_form(authors=[{"name": "Solo", "is_corresponding": True}]),
        files=pdf_file(),
        headers=headers,
    )
    assert corresponding_without_email.status_code == 422

    no_title = await client.post(SUBMIT_URL, data=paper_form(title="  "), files=pdf_file(), headers=headers)
    assert no_title.status_code == 422
    assert no_title.json()["type"] == "validation_error"

    no_file = await client.post(SUBMIT_URL, data=paper_form(), headers=headers)
    assert no_file.status_code == 422
    assert no_file.json()["detail"][0]["msg"] == "A paper file is required"

    wrong_type = await client.post(
        SUBMIT_URL, data=paper_form(), files=pdf_file("paper.png", b"\x89PNG", "image/png"), headers=headers
    )
    assert wrong_type.status_code == 422

    assert store.count("papers") == 0

@pytest.mark.asyncio
async def test_submit_upload_failure_is_502(client: AsyncClient, author, storage, store):
    storage.fail_uploads = True
    response = await client.post(SUBMIT_URL, data=paper_form(), files=pdf_file(), headers=auth_headers(token_for(author)))
    assert response.status_code == 502
    assert response.json() == {"detail": "File upload failed", "type": "dependency_failure"}
    assert store.count("papers") == 0

@pytest.mark.asyncio
async def test_reviewer_cannot_submit(client: AsyncClient, make_user):
    reviewer = make_user(Role.REVIEWER)
    response = await client.post(SUBMIT_URL, data=paper_form(), files=pdf_file(), headers=auth_headers(token_for(reviewer)))
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_unauthenticated_submit_is_401(client: AsyncClient):
    response = await client.post(SUBMIT_URL, data=paper_form(), files=pdf_file())
    assert response.status_code == 401

@pytest.mark.asyncio
async def test_corresponding_coauthor_sees_paper_but_cannot_resubmit(client: AsyncClient, author, admin_token, mailer, make_user):
    paper = await submit_paper(client, token_for(author))
    stranger = make_user(Role.AUTHOR, email="stranger@example.org")

    # 与论文无关的作者：不可见
    hidden = await client.get(f"{SUBMIT_URL}/{paper['id']}", headers=auth_headers(token_for(stranger)))
    assert hidden.status_code == 404

    # Charles 的账号由投稿自动开通，用邮件里的临时密码登录
    password = mailer.to("charles@example.org")[0]["context"]["temporary_password"]
    login = await client.post(f"{API_PREFIX}/auth/login", json={"email": "charles@example.org", "password": password})
    assert login.status_code == 200
    charles_token = login.json()["token"]

    listed = await client.get(SUBMIT_URL, headers=auth_headers(charles_token))
    assert [p["id"] for p in listed.json()] == [paper["id"]]
    detail = await client.get(f"{SUBMIT_URL}/{paper['id']}", headers=auth_headers(charles_token))
    assert detail.status_code == 200
    assert detail.json()["is_primary_author"] is False

    await client.patch(
        f"{API_PREFIX}/admin/papers/{paper['id']}/status",
        json={"status": "REVISION_REQUIRED"},
        headers=auth_headers(admin_token),
    )
    resubmit = await client.post(
        f"{SUBMIT_URL}/{paper['id']}/resubmit", files=pdf_file("revised.pdf"), headers=auth_headers(charles_token)
    )
    assert resubmit.status_code == 403

@pytest.mark.asyncio
async def test_author_lists_and_reads_own_papers(client: AsyncClient, author):
    token = token_for(author)
    first = await submit_paper(client, token, title="First")
    second = await submit_paper(client, token, title="Second")

    listed = await client.get(SUBMIT_URL, headers=auth_headers(token))
    assert listed.status_code == 200
    assert [p["id"] for p in listed.json()] == [second["id"], first["id"]]

    detail = await client.get(f"{SUBMIT_URL}/{first['id']}", headers=auth_headers(token))
    assert detail.status_code == 200
    body = detail.json()
    assert body["is_primary_author"] is True
    assert body["authors"][0]["salutation"] == "Dr"
    assert body["reviews"] == []

@pytest.mark.asyncio
async def test_resubmit_flow(client: AsyncClient, author, admin_token, storage, store):
    token = token_for(author)
    paper = await submit_paper(client, token)
    url = f"{SUBMIT_URL}/{paper['id']}/resubmit"

    early = await client.post(url, files=pdf_file("revised.pdf"), headers=auth_headers(token))
    assert early.status_code == 409
    assert early.json()["detail"] == "Paper cannot be resubmitted with status: PENDING_APPROVAL"
    assert store.find_by_id("papers", paper["id"])["file_url"] == paper["file_url"]
    assert len(storage.deleted) == 1

    await client.patch(
        f"{API_PREFIX}/admin/papers/{paper['id']}/status",
        json={"status": "REVISION_REQUIRED"},
        headers=auth_headers(admin_token),
    )
    ok = await client.post(url, files=pdf_file("revised.pdf"), headers=auth_headers(token))
    assert ok.status_code == 200
    assert ok.json()["paper"]["status"] == "RESUBMITTED"
    assert ok.json()["paper"]["file_url"] != paper["file_url"]
    assert paper["file_url"] in storage.deleted

@pytest.mark.asyncio
async def test_camera_ready_and_file_link(client: AsyncClient, author):
    token = token_for(author)
    paper = await submit_paper(client, token)

    missing = await client.get(f"{API_PREFIX}/papers/{paper['id']}/file?kind=camera_ready", headers=auth_headers(token))
    assert missing.status_code == 404

    uploaded = await client.post(
        f"{SUBMIT_URL}/{paper['id']}/camera-ready", files=pdf_file("final.pdf"), headers=auth_headers(token)
    )
    assert uploaded.status_code == 200
    camera = uploaded.json()["paper"]["camera_ready_url"]
    assert camera

    link = await client.get(f"{API_PREFIX}/papers/{paper['id']}/file?kind=camera_ready", headers=auth_headers(token))
    assert link.status_code == 200
    assert link.json() == {"url": f"https://files.test/{camera}?token=signed", "expires_in": 600, "kind": "camera_ready"}

    bad_kind = await client.get(f"{API_PREFIX}/papers/{paper['id']}/file?kind=slides", headers=auth_headers(token))
    assert bad_kind.status_code == 422

@pytest.mark.asyncio
async def test_author_feedback_does_not_notify(client: AsyncClient, author, mailer):
    token = token_for(author)
    paper = await submit_paper(client, token)
    before = len(mailer.sent)

    response = await client.post(f"{SUBMIT_URL}/{paper['id']}/feedback", json={"message": "Is the deadline fixed?"}, headers=auth_headers(token))

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Feedback sent"
    assert body["feedback"]["sender_id"] == author["id"]
    assert len(mailer.sent) == before

@pytest.mark.asyncio
async def test_keywords_accept_json_payload(client: AsyncClient, author):
    paper = await submit_paper(client, token_for(author), keywords=json.dumps(["a", " b ", ""]))
    assert paper["keywords"] == ["a", "b"]

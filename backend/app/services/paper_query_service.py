from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.core.access_guard import AuthorPolicy, PaperContext, authorize, normalize_email, require_action
from app.core.errors import NotFound, ValidationError
from app.lib.record_store import RecordStore, Row
from app.models.paper import PaperAction, Role


def _full_name(user: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not user:
        return None
    parts = [user.get("first_name"), user.get("middle_name"), user.get("last_name")]
    return " ".join(p for p in parts if p) or None


class PaperQueryService:
    """
    按角色组织的论文读取视图。

    中文注释:
    - ADMIN 看到全部信息（含审稿人身份）；
    - AUTHOR 看到的评审意见不含审稿人身份（盲审），审稿人发送的反馈同样隐藏发送者姓名；
    - REVIEWER 只能看到已分配给自己的论文，评审只带 reviewer_id。
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def _users_by_id(self, ids: Iterable[Any]) -> Dict[str, Row]:
        unique = sorted({str(i) for i in ids if i})
        if not unique:
            return {}
        return {str(u["id"]): u for u in self.store.find_many("users", {"id": unique})}

    def _group_count(self, table: str, paper_ids: List[str]) -> Dict[str, int]:
        counts: Dict[str, int] = {pid: 0 for pid in paper_ids}
        if not paper_ids:
            return counts
        for row in self.store.find_many(table, {"paper_id": paper_ids}):
            pid = str(row["paper_id"])
            counts[pid] = counts.get(pid, 0) + 1
        return counts

    # === lists ===

    def list_all(self) -> List[Dict[str, Any]]:
        papers = self.store.find_many("papers", order_by="submitted_at", desc=True)
        ids = [str(p["id"]) for p in papers]
        assignment_counts = self._group_count("reviewer_assignments", ids)
        review_counts = self._group_count("reviews", ids)
        owners = self._users_by_id(p.get("author_id") for p in papers)
        return [
            {
                **p,
                "assignment_count": assignment_counts.get(str(p["id"]), 0),
                "review_count": review_counts.get(str(p["id"]), 0),
                "primary_author_name": _full_name(owners.get(str(p.get("author_id")))),
            }
            for p in papers
        ]

    def list_for_author(self, user: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """主作者的论文 + 以通讯作者身份（邮箱匹配）出现的论文"""
        own = self.store.find_many("papers", {"author_id": str(user["id"])})
        email = normalize_email(user.get("email"))
        linked_ids: List[str] = []
        if email:
            for row in self.store.find_many("paper_authors", {"email": email, "is_corresponding": True}):
                linked_ids.append(str(row["paper_id"]))
        own_ids = {str(p["id"]) for p in own}
        extra_ids = sorted(set(linked_ids) - own_ids)
        linked = self.store.find_many("papers", {"id": extra_ids}) if extra_ids else []
        papers = own + linked
        papers.sort(key=lambda p: p["submitted_at"], reverse=True)
        return papers

    def list_for_reviewer(self, user: Mapping[str, Any]) -> List[Dict[str, Any]]:
        rid = str(user["id"])
        assignments = self.store.find_many("reviewer_assignments", {"reviewer_id": rid})
        paper_ids = [str(a["paper_id"]) for a in assignments]
        if not paper_ids:
            return []
        reviewed = {str(r["paper_id"]) for r in self.store.find_many("reviews", {"reviewer_id": rid})}
        papers = self.store.find_many("papers", {"id": paper_ids}, order_by="submitted_at", desc=True)
        return [{**p, "has_reviewed": str(p["id"]) in reviewed} for p in papers]

    # === detail ===

    def get_context(self, user: Mapping[str, Any], paper_id: str) -> PaperContext:
        require_action(user, PaperAction.VIEW)
        return authorize(PaperAction.VIEW, PaperContext.load(self.store, paper_id), user)

    def get_detail(self, user: Mapping[str, Any], paper_id: str) -> Dict[str, Any]:
        ctx = self.get_context(user, paper_id)
        role = str(user.get("role") or "")

        reviews = self.store.find_many("reviews", {"paper_id": ctx.paper_id}, order_by="reviewed_at")
        feedbacks = self.store.find_many("feedbacks", {"paper_id": ctx.paper_id}, order_by="sent_at")
        assignments = self.store.find_many("reviewer_assignments", {"paper_id": ctx.paper_id}, order_by="assigned_at")
        users = self._users_by_id(
            [r.get("reviewer_id") for r in reviews] + [f.get("sender_id") for f in feedbacks]
            + [a.get("reviewer_id") for a in assignments]
        )

        detail: Dict[str, Any] = {**ctx.paper, "authors": ctx.authors}
        detail["reviews"] = [self._review_view(r, users, role) for r in reviews]
        detail["feedbacks"] = [self._feedback_view(f, users, role) for f in feedbacks]

        if role == Role.ADMIN.value:
            reviewed = {str(r["reviewer_id"]) for r in reviews}
            detail["assignments"] = [
                {
                    "reviewer_id": a["reviewer_id"],
                    "reviewer_name": _full_name(users.get(str(a["reviewer_id"]))),
                    "reviewer_email": (users.get(str(a["reviewer_id"])) or {}).get("email"),
                    "assigned_at": a["assigned_at"],
                    "has_reviewed": str(a["reviewer_id"]) in reviewed,
                }
                for a in assignments
            ]
        elif role == Role.AUTHOR.value:
            detail["is_primary_author"] = AuthorPolicy.is_primary(ctx, user)
        return detail

    @staticmethod
    def _review_view(review: Row, users: Dict[str, Row], role: str) -> Dict[str, Any]:
        view: Dict[str, Any] = {
            "id": review["id"],
            "comments": review["comments"],
            "recommendation": review["recommendation"],
            "reviewed_at": review["reviewed_at"],
        }
        if role == Role.AUTHOR.value:
            return view
        view["reviewer_id"] = review.get("reviewer_id")
        if role == Role.ADMIN.value:
            reviewer = users.get(str(review.get("reviewer_id")))
            view["reviewer_name"] = _full_name(reviewer)
            view["reviewer_email"] = (reviewer or {}).get("email")
        return view

    @staticmethod
    def _feedback_view(feedback: Row, users: Dict[str, Row], role: str) -> Dict[str, Any]:
        sender = users.get(str(feedback.get("sender_id")))
        sender_role = (sender or {}).get("role")
        sender_id: Optional[str] = feedback["sender_id"]
        name = _full_name(sender)
        # 作者看不到审稿人的身份
        if role == Role.AUTHOR.value and sender_role == Role.REVIEWER.value:
            sender_id = None
            name = None
        return {
            "id": feedback["id"],
            "sender_id": sender_id,
            "sender_name": name,
            "sender_role": sender_role,
            "message": feedback["message"],
            "sent_at": feedback["sent_at"],
        }

    def file_reference(self, user: Mapping[str, Any], paper_id: str, kind: str) -> str:
        ctx = self.get_context(user, paper_id)
        column = {"manuscript": "file_url", "camera_ready": "camera_ready_url"}.get(kind)
        if column is None:
            raise ValidationError.for_field("kind", "kind must be manuscript or camera_ready")
        reference = ctx.paper.get(column)
        if not reference:
            raise NotFound("File not found")
        return str(reference)

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import caller_for, make_user
from tradehub.core.errors import Conflict, Denied, NotFound, Unexpected, ValidationError
from tradehub.db.models.admin_audit_log import AdminAuditLog
from tradehub.db.models.report import Report
from tradehub.db.models.trade import Trade
from tradehub.db.models.user import User
from tradehub.schemas.trade import TradeCreate
from tradehub.services import moderation, trades
from tradehub.services.lifecycle import TRADE, delete_owned


def _trade(db, owner):
    return trades.create_trade(db, caller_for(owner), TradeCreate(item_offered="Fiery Horns", category="accessories"))


def test_severity_is_monotonic_in_report_count():
    assert moderation.severity_for_count(0) == "low"
    assert moderation.severity_for_count(2) == "low"
    assert moderation.severity_for_count(3) == "medium"
    assert moderation.severity_for_count(4) == "medium"
    assert moderation.severity_for_count(5) == "high"
    rank = {"low": 0, "medium": 1, "high": 2}
    levels = [rank[moderation.severity_for_count(n)] for n in range(20)]
    assert levels == sorted(levels)


def test_severity_bounds_match_severity_for_count():
    for severity in ("low", "medium", "high"):
        lower, upper = moderation.severity_bounds(severity)
        assert moderation.severity_for_count(lower) == severity
        if upper is not None:
            assert moderation.severity_for_count(upper - 1) == severity
            assert moderation.severity_for_count(upper) != severity


def test_report_rules(db_session):
    owner = make_user(db_session, username="owner")
    reporter = make_user(db_session, username="reporter")
    trade = _trade(db_session, owner)

    report = moderation.file_report(db_session, caller_for(reporter), "trade", trade["id"], "scam attempt")
    assert report["status"] == "pending"
    assert report["reported_user_id"] == owner.id
    assert report["reported_by_username"] == "reporter"

    with pytest.raises(Conflict):
        moderation.file_report(db_session, caller_for(reporter), "trade", trade["id"], "again")
    with pytest.raises(ValidationError):
        moderation.file_report(db_session, caller_for(owner), "trade", trade["id"], "my own")
    with pytest.raises(ValidationError):
        moderation.file_report(db_session, caller_for(owner), "user", owner.id, "myself")
    with pytest.raises(NotFound):
        moderation.file_report(db_session, caller_for(reporter), "forum_post", 999, "missing")


def test_flagged_groups_reports_and_filters_by_severity(db_session):
    owner = make_user(db_session, username="owner")
    busy = _trade(db_session, owner)
    quiet = _trade(db_session, owner)
    reporters = [make_user(db_session, username=f"reporter{i}") for i in range(5)]
    for reporter in reporters:
        moderation.file_report(db_session, caller_for(reporter), "trade", busy["id"], "spam")
    moderation.file_report(db_session, caller_for(reporters[0]), "trade", quiet["id"], "spam")

    flagged = moderation.list_flagged(db_session)
    assert [(row["target_id"], row["report_count"], row["severity"]) for row in flagged["items"]] == [
        (busy["id"], 5, "high"),
        (quiet["id"], 1, "low"),
    ]
    assert flagged["items"][0]["target_label"] == "Fiery Horns"

    high = moderation.list_flagged(db_session, severity="high")
    assert [row["target_id"] for row in high["items"]] == [busy["id"]]
    assert moderation.list_flagged(db_session, severity="medium")["pagination"]["total"] == 0


def test_resolve_report_with_content_deletion(db_session):
    owner = make_user(db_session, username="owner")
    reporter = make_user(db_session, username="reporter")
    moderator = make_user(db_session, username="mod", role="moderator")
    trade = _trade(db_session, owner)
    report = moderation.file_report(db_session, caller_for(reporter), "trade", trade["id"], "scam")

    with pytest.raises(Denied):
        moderation.resolve_report(db_session, caller_for(reporter), report["id"], "resolved", "delete_content")
    resolved = moderation.resolve_report(db_session, caller_for(moderator), report["id"], "resolved", "delete_content")

    assert resolved["status"] == "resolved"
    assert resolved["action_taken"] == "delete_content"
    assert resolved["reviewed_by"] == moderator.id
    assert db_session.get(Trade, trade["id"]) is None
    assert moderation.list_flagged(db_session)["pagination"]["total"] == 0
    actions = {row.action for row in db_session.query(AdminAuditLog).all()}
    assert "report.resolved" in actions


def _reported_trade(db, owner, reporters: int = 3):
    trade = _trade(db, owner)
    ids = []
    for i in range(reporters):
        reporter = make_user(db, username=f"reporter{i}")
        ids.append(moderation.file_report(db, caller_for(reporter), "trade", trade["id"], "scam")["id"])
    return trade, ids


def test_owner_delete_closes_open_reports(db_session):
    owner = make_user(db_session, username="owner")
    trade, ids = _reported_trade(db_session, owner)
    assert moderation.list_flagged(db_session)["items"][0]["severity"] == "medium"

    result = delete_owned(db_session, caller_for(owner), TRADE, trade["id"])

    assert result["reports_resolved"] == 3
    assert moderation.list_flagged(db_session)["pagination"]["total"] == 0
    rows = db_session.query(Report).filter(Report.id.in_(ids)).all()
    assert {(row.status, row.action_taken, row.reviewed_by) for row in rows} == {("resolved", "delete_content", None)}


def test_content_deletion_resolves_sibling_reports(db_session):
    owner = make_user(db_session, username="owner")
    moderator = make_user(db_session, username="mod", role="moderator")
    trade, ids = _reported_trade(db_session, owner)

    resolved = moderation.resolve_report(db_session, caller_for(moderator), ids[0], "reviewed", "delete_content")

    assert resolved["status"] == "reviewed"
    siblings = db_session.query(Report).filter(Report.id.in_(ids[1:])).order_by(Report.id).all()
    assert [(row.status, row.reviewed_by) for row in siblings] == [("resolved", moderator.id)] * 2
    assert moderation.admin_stats(db_session)["pending_reports"] == 0


def test_force_delete_audit_commits_with_the_cascade(db_session, monkeypatch):
    owner = make_user(db_session, username="owner")
    moderator = make_user(db_session, username="mod", role="moderator")
    trade = _trade(db_session, owner)

    def failing_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(Unexpected):
        moderation.force_delete(db_session, caller_for(moderator), "trade", trade["id"])
    monkeypatch.undo()

    assert db_session.get(Trade, trade["id"]) is not None
    assert db_session.query(AdminAuditLog).filter(AdminAuditLog.action == "trade.force_delete").count() == 0

    moderation.force_delete(db_session, caller_for(moderator), "trade", trade["id"])
    log = db_session.query(AdminAuditLog).filter(AdminAuditLog.action == "trade.force_delete").one()
    assert (log.target_user_id, log.target_id) == (owner.id, trade["id"])


def test_ban_and_unban(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    target = make_user(db_session, username="target", role="verified")

    banned = moderation.ban_user(db_session, caller_for(moderator), target.id, "ban", "scamming")
    assert banned["role"] == "banned"
    assert banned["ban_reason"] == "scamming"
    assert banned["banned_at"] is not None
    with pytest.raises(Conflict):
        moderation.ban_user(db_session, caller_for(moderator), target.id, "ban")

    restored = moderation.ban_user(db_session, caller_for(moderator), target.id, "unban")
    assert restored["role"] == "user"
    assert restored["ban_reason"] is None


def test_ban_guards(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    other_mod = make_user(db_session, username="mod2", role="moderator")
    admin = make_user(db_session, username="admin", role="admin")
    user = make_user(db_session, username="user")

    with pytest.raises(ValidationError):
        moderation.ban_user(db_session, caller_for(moderator), moderator.id, "ban")
    with pytest.raises(Denied):
        moderation.ban_user(db_session, caller_for(moderator), admin.id, "ban")
    with pytest.raises(Denied):
        moderation.ban_user(db_session, caller_for(moderator), other_mod.id, "ban")
    with pytest.raises(Denied):
        moderation.ban_user(db_session, caller_for(user), moderator.id, "ban")
    assert moderation.ban_user(db_session, caller_for(admin), other_mod.id, "ban")["role"] == "banned"


def test_set_role_is_admin_only(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    admin = make_user(db_session, username="admin", role="admin")
    user = make_user(db_session, username="user")

    with pytest.raises(Denied):
        moderation.set_role(db_session, caller_for(moderator), user.id, "verified")
    with pytest.raises(ValidationError):
        moderation.set_role(db_session, caller_for(admin), admin.id, "user")

    assert moderation.set_role(db_session, caller_for(admin), user.id, "middleman")["role"] == "middleman"
    banned = moderation.set_role(db_session, caller_for(admin), user.id, "banned", "alt account")
    assert banned["ban_reason"] == "alt account"
    cleared = moderation.set_role(db_session, caller_for(admin), user.id, "user")
    assert cleared["ban_reason"] is None

    log = db_session.query(AdminAuditLog).filter(AdminAuditLog.action == "user.set_role").order_by(AdminAuditLog.id).first()
    assert log.actor_user_id == admin.id
    assert log.meta_json["to"] == "middleman"


def test_verification_flow(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    user = make_user(db_session, username="user")
    db_session.query(User).filter(User.id == user.id).update({User.verification_requested: True})
    db_session.commit()

    pending = moderation.verification_requests(db_session)
    assert [row["id"] for row in pending["items"]] == [user.id]

    approved = moderation.resolve_verification(db_session, caller_for(moderator), user.id, "approve_verified")
    assert approved["role"] == "verified"
    assert approved["verification_requested"] is False
    assert moderation.verification_requests(db_session)["pagination"]["total"] == 0


def test_approval_requires_a_pending_request(db_session):
    moderator = make_user(db_session, username="mod", role="moderator")
    user = make_user(db_session, username="user")

    with pytest.raises(ValidationError):
        moderation.resolve_verification(db_session, caller_for(moderator), user.id, "approve_verified")
    with pytest.raises(ValidationError):
        moderation.resolve_verification(db_session, caller_for(moderator), user.id, "approve_middleman")
    db_session.refresh(user)
    assert user.role == "user"
    assert moderation.resolve_verification(db_session, caller_for(moderator), user.id, "reject")["role"] == "user"


def test_admin_stats_counts(db_session):
    owner = make_user(db_session, username="owner")
    reporter = make_user(db_session, username="reporter")
    trade = _trade(db_session, owner)
    moderation.file_report(db_session, caller_for(reporter), "user", owner.id, "rude")

    stats = moderation.admin_stats(db_session)
    assert stats["total_users"] == 2
    assert stats["total_trades"] == 1
    assert stats["open_trades"] == 1
    assert stats["pending_reports"] == 1
    assert trade["status"] == "open"

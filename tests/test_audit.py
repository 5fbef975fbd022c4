from datetime import datetime, timedelta

import pytest

from models import BankingActivity
from schemas.activities import ActivityRecord, ActivityFilters
from services.audit import AuditTrail
from services.errors import InvalidRetentionRequest


def activity(method="upi", status="success", session_id="s1", action="fetch_balance", masked="u****@bank"):
    return ActivityRecord(
        action=action, method=method, masked_identifier=masked,
        environment="development", session_id=session_id, status=status,
    )


def seed(db_session, records):
    trail = AuditTrail(db_session)
    for record in records:
        trail.append(record)
    db_session.commit()
    return trail


def age(db_session, days, session_id=None):
    query = db_session.query(BankingActivity)
    if session_id:
        query = query.filter(BankingActivity.session_id == session_id)
    for row in query.all():
        row.timestamp = datetime.utcnow() - timedelta(days=days)
    db_session.commit()


def test_retention_without_selector_is_rejected(db_session):
    with pytest.raises(InvalidRetentionRequest):
        AuditTrail(db_session).delete_older_than()


def test_retention_rejects_negative_age(db_session):
    with pytest.raises(InvalidRetentionRequest):
        AuditTrail(db_session).delete_older_than(days=-1)


def test_retention_by_age(db_session):
    trail = seed(db_session, [activity(session_id="old"), activity(session_id="new")])
    age(db_session, 100, session_id="old")
    assert trail.delete_older_than(days=90) == 1
    assert [a.session_id for a in trail.query()[0]] == ["new"]


def test_retention_by_session(db_session):
    trail = seed(db_session, [activity(session_id="s1"), activity(session_id="s1"), activity(session_id="s2")])
    assert trail.delete_by_session("s1") == 2
    assert trail.query()[1] == 1


def test_retention_with_both_selectors_requires_both(db_session):
    trail = seed(db_session, [activity(session_id="s1"), activity(session_id="s2")])
    age(db_session, 10)
    assert trail.delete_older_than(days=5, session_id="s1") == 1
    assert [a.session_id for a in trail.query()[0]] == ["s2"]


def test_query_is_newest_first_and_paginated(db_session):
    trail = seed(db_session, [activity(masked=f"****000{i}", method="account") for i in range(5)])
    page, total = trail.query(page=1, page_size=2)
    assert total == 5
    assert [a.masked_identifier for a in page] == ["****0004", "****0003"]


def test_query_filters(db_session):
    trail = seed(db_session, [
        activity(method="upi", status="success"),
        activity(method="card", status="failure", masked="****-****-****-1111"),
        activity(method="card", status="success", masked="****-****-****-1111", session_id="s2"),
    ])
    records, total = trail.query(ActivityFilters(method="card", status="failure"))
    assert total == 1
    assert records[0].masked_identifier == "****-****-****-1111"
    assert trail.query(ActivityFilters(session_id="s2"))[1] == 1


def test_aggregate_orders_by_count(db_session):
    trail = seed(db_session, [
        activity(method="card"), activity(method="upi"), activity(method="upi"),
        activity(method="account"), activity(method="upi"), activity(method="card"),
    ])
    assert trail.aggregate_by_field("method") == [("upi", 3), ("card", 2), ("account", 1)]


def test_aggregate_rejects_unknown_field(db_session):
    with pytest.raises(ValueError):
        AuditTrail(db_session).aggregate_by_field("ip_address")


def test_stats(db_session):
    trail = seed(db_session, [
        activity(status="success"), activity(status="success"),
        activity(status="failure", method="card"), activity(status="pending", action="convert"),
    ])
    stats = trail.stats()
    assert stats["total"] == 4
    assert stats["by_status"] == {"success": 2, "failure": 1, "pending": 1}
    assert stats["by_action"][0] == {"value": "fetch_balance", "count": 3}
    assert {"value": "card", "count": 1} in stats["by_method"]


def test_stats_period_excludes_older_activity(db_session):
    trail = seed(db_session, [activity(session_id="old"), activity(session_id="new")])
    age(db_session, 3, session_id="old")
    assert trail.stats(period="day")["total"] == 1
    assert trail.stats(period="week")["total"] == 2

from __future__ import annotations
from datetime import date, datetime, time
from types import SimpleNamespace
import pytest

from blueprints.core.errors import ValidationError
from blueprints.scheduler import recurrence as rec


def make_rule(**kw):
    base = dict(rule_type="weekly", interval=1, by_day=None, custom_dates=None,
                start_time=time(17, 0), duration_minutes=60,
                start_date=date(2025, 1, 6), end_date=None)
    base.update(kw)
    return SimpleNamespace(**base)


def days(drafts):
    return [d.session_date for d in drafts]


def test_weekly_two_weeks():
    rule = make_rule(by_day=["monday", "wednesday"])
    out = rec.expand(rule, date(2025, 1, 6), date(2025, 1, 20))
    assert days(out) == [date(2025, 1, 6), date(2025, 1, 8), date(2025, 1, 13), date(2025, 1, 15)]
    assert out[0].scheduled_start == datetime(2025, 1, 6, 17, 0)
    assert out[0].scheduled_end == datetime(2025, 1, 6, 18, 0)


def test_weekly_interval_two_skips_odd_weeks():
    rule = make_rule(by_day=["monday"], interval=2)
    out = rec.expand(rule, date(2025, 1, 6), date(2025, 2, 3))
    assert days(out) == [date(2025, 1, 6), date(2025, 1, 20)]


def test_biweekly_ignores_interval():
    rule = make_rule(rule_type="biweekly", by_day=["friday"], interval=5, start_date=date(2025, 1, 3))
    out = rec.expand(rule, date(2025, 1, 3), date(2025, 1, 31))
    assert days(out) == [date(2025, 1, 3), date(2025, 1, 17)]


def test_daily_interval_three():
    rule = make_rule(rule_type="daily", interval=3, start_date=date(2025, 1, 1))
    out = rec.expand(rule, date(2025, 1, 1), date(2025, 1, 11))
    assert days(out) == [date(2025, 1, 1), date(2025, 1, 4), date(2025, 1, 7), date(2025, 1, 10)]


def test_custom_dates_inside_window_only():
    rule = make_rule(rule_type="custom", start_date=date(2025, 1, 1),
                     custom_dates=["2025-01-02", "2025-01-09", "2025-03-01"])
    out = rec.expand(rule, date(2025, 1, 1), date(2025, 2, 1))
    assert days(out) == [date(2025, 1, 2), date(2025, 1, 9)]


def test_rule_fields_parsed_once_per_expand(monkeypatch):
    calls = {"dates": 0, "days": 0}
    parse_dates, norm_days = rec.parse_custom_dates, rec.normalize_by_day

    def counting_dates(values):
        calls["dates"] += 1
        return parse_dates(values)

    def counting_days(values):
        calls["days"] += 1
        return norm_days(values)

    monkeypatch.setattr(rec, "parse_custom_dates", counting_dates)
    monkeypatch.setattr(rec, "normalize_by_day", counting_days)
    custom = make_rule(rule_type="custom", start_date=date(2025, 1, 1),
                       custom_dates=["2025-01-02", "2025-03-15"])
    assert days(rec.expand(custom, date(2025, 1, 1), date(2025, 12, 31))) == [date(2025, 1, 2),
                                                                            date(2025, 3, 15)]
    weekly = make_rule(by_day=["friday"])
    assert len(rec.expand(weekly, date(2025, 1, 6), date(2025, 12, 29))) == 51
    assert calls == {"dates": 1, "days": 2}


def test_end_date_is_inclusive():
    rule = make_rule(rule_type="daily", start_date=date(2025, 1, 1), end_date=date(2025, 1, 3))
    out = rec.expand(rule, date(2025, 1, 1), date(2025, 2, 1))
    assert days(out) == [date(2025, 1, 1), date(2025, 1, 2), date(2025, 1, 3)]


def test_zero_match_window_is_empty_not_error():
    rule = make_rule(by_day=["sunday"])
    assert rec.expand(rule, date(2025, 1, 6), date(2025, 1, 11)) == []
    # окно целиком до начала правила
    assert rec.expand(rule, date(2024, 1, 1), date(2024, 2, 1)) == []


def test_existing_and_past_are_skipped():
    rule = make_rule(by_day=["monday", "wednesday"])
    out = rec.expand(rule, date(2025, 1, 6), date(2025, 1, 20),
                     existing_dates={date(2025, 1, 8)},
                     now=datetime(2025, 1, 6, 17, 0))  # начало в 17:00 — уже не будущее
    assert days(out) == [date(2025, 1, 13), date(2025, 1, 15)]


def test_validate_normalizes_and_forces_biweekly_interval():
    norm = rec.validate_rule(rule_type="biweekly", interval=3, by_day=["Friday", "monday", "friday"],
                             custom_dates=None, start_date=date(2025, 1, 3), end_date=None,
                             duration_minutes=45)
    assert norm["interval"] == 2
    assert norm["by_day"] == ["monday", "friday"]


@pytest.mark.parametrize("kw, code", [
    (dict(rule_type="weekly", by_day=[]), "by_day_required"),
    (dict(rule_type="biweekly", by_day=None), "by_day_required"),
    (dict(rule_type="custom", custom_dates=[]), "custom_dates_required"),
    (dict(rule_type="daily", end_date=date(2024, 12, 31)), "invalid_date_range"),
    (dict(rule_type="daily", interval=0), "invalid_interval"),
    (dict(rule_type="daily", duration_minutes=0), "invalid_duration"),
    (dict(rule_type="hourly"), "invalid_rule_type"),
    (dict(rule_type="weekly", by_day=["funday"]), "invalid_by_day"),
])
def test_validate_rejects_malformed(kw, code):
    args = dict(rule_type="daily", interval=1, by_day=None, custom_dates=None,
                start_date=date(2025, 1, 1), end_date=None, duration_minutes=60)
    args.update(kw)
    with pytest.raises(ValidationError) as ei:
        rec.validate_rule(**args)
    assert ei.value.code == code

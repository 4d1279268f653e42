# frontend/test_ui_helpers.py
# Unit tests for the dashboard display helpers

import math

import pytest

from frontend.ui_helpers import (
    allocation_frame,
    clean_payload,
    default_page,
    format_money,
    format_pct,
    pages_for_role,
    records_frame,
    remaining_allocation,
    review_options,
    risk_level,
    status_badge,
)


@pytest.mark.parametrize("value,expected", [
    (0, "₹0"),
    (999, "₹999"),
    (1000, "₹1,000"),
    (250000, "₹2,50,000"),
    (1250000.4, "₹12,50,000"),
    (123456789, "₹12,34,56,789"),
    (-50000, "-₹50,000"),
])
def test_format_money_uses_indian_grouping(value, expected):
    assert format_money(value) == expected


def test_format_money_missing():
    assert format_money(None) == "n/a"
    assert format_money(math.nan) == "n/a"


def test_format_pct():
    assert format_pct(60) == "60.0%"
    assert format_pct(None) == "n/a"


def test_risk_level_buckets():
    assert risk_level(0) == "low"
    assert risk_level(19.9) == "low"
    assert risk_level(20) == "medium"
    assert risk_level(50) == "high"
    assert risk_level(None) == "unknown"


def test_status_badge():
    assert status_badge("verified") == "🟢 Verified"
    assert status_badge("something_else") == "Something Else"
    assert status_badge(None) == "-"


def test_pages_follow_role():
    assert "Assets" in pages_for_role("owner")
    assert "Assets" not in pages_for_role("nominee")
    assert "Admin" in pages_for_role("super_admin")
    assert pages_for_role(None) == ["Login", "Register"]
    assert default_page("admin") == "Dashboard"


def test_review_options_end_at_terminal_states():
    assert review_options("pending") == ["under_review", "verified", "rejected"]
    assert review_options("under_review") == ["verified", "rejected"]
    assert review_options("verified") == []
    assert review_options(None) == []


def test_remaining_allocation_excludes_edited_nominee():
    nominees = [{"id": "a", "allocationPercentage": 60}, {"id": "b", "allocationPercentage": 30}]
    assert remaining_allocation(nominees) == 10
    assert remaining_allocation(nominees, exclude_id="a") == 70
    assert remaining_allocation([{"id": "c", "allocationPercentage": 120}]) == 0


def test_records_frame_projects_and_flattens():
    items = [{"brokerName": "Zerodha", "nominee": {"id": "n1", "name": "Meera", "relation": "Spouse"},
              "documents": ["a", "b"]}]
    df = records_frame(items, {"brokerName": "Broker", "nominee": "Nominee", "documents": "Docs",
                               "status": "Status"})
    assert list(df.columns) == ["Broker", "Nominee", "Docs", "Status"]
    row = df.iloc[0].to_dict()
    assert row["Nominee"] == "Meera"
    assert row["Docs"] == 2
    assert row["Status"] is None


def test_allocation_frame():
    df = allocation_frame([{"name": "Bank", "value": 75, "amount": 300000, "color": "#3B82F6"},
                           {"name": "LIC", "value": 25, "amount": 100000, "color": "#10B981"}])
    assert df.loc["Bank", "amount"] == 300000
    assert df.loc["LIC", "share"] == 25
    assert allocation_frame([]).empty


def test_clean_payload_drops_blanks_only():
    assert clean_payload({"a": "", "b": None, "c": 0, "d": False, "e": "x"}) == {"c": 0, "d": False, "e": "x"}

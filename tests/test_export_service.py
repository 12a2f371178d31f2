import csv
import io
from datetime import date, datetime

from funfarm_rewards.schemas import (
    LifetimeReward, ReconciliationDirection, ReconciliationReport, ReconciliationResult,
    RewardBreakdown, SuspicionLevel, SuspicionRecord, UserFailure
)
from funfarm_rewards.services.export_service import (
    BOM, daily_breakdown_csv, reconciliation_csv, suspicion_csv, to_csv
)


def parse(text):
    assert text.startswith(BOM)
    return list(csv.reader(io.StringIO(text[len(BOM):])))


def test_to_csv_starts_with_bom_and_escapes_quotes():
    text = to_csv(["name", "amount"], [['Vườn "Xanh", Đà Lạt', 1234567], [None, 0]])

    assert text.startswith(BOM + "name,amount\n")
    assert '"Vườn ""Xanh"", Đà Lạt",1234567\n' in text
    assert text.endswith(",0\n")


def test_reconciliation_csv_emits_plain_integers():
    report = ReconciliationReport(
        cutoff=datetime(2025, 1, 31),
        total=1,
        processed=1,
        results=[ReconciliationResult(
            user_id="u1",
            display_name="Lan, Farm",
            persisted_pending=400000,
            persisted_approved=100000,
            persisted_total=500000,
            recomputed_total=300000,
            delta=200000,
            direction=ReconciliationDirection.over_credit,
            large_discrepancy=True,
            warnings=["2025-01-20: likes: data unavailable, counted as zero"],
        )],
    )
    rows = parse(reconciliation_csv(report))

    assert rows[0][0] == "user_id"
    assert len(rows) == 2
    row = dict(zip(rows[0], rows[1]))
    assert row["display_name"] == "Lan, Farm"
    assert row["delta"] == "200000"
    assert row["direction"] == "over_credit"
    assert row["large_discrepancy"] == "yes"


def test_daily_breakdown_csv_has_a_row_per_day_plus_totals():
    lifetime = LifetimeReward(
        user_id="u1",
        days=[
            RewardBreakdown(user_id="u1", day=date(2025, 1, 20), quality_posts=1, post_reward=20000,
                            total=20000, capped_total=20000),
            RewardBreakdown(user_id="u1", day=date(2025, 1, 21), normal_posts=1, post_reward=5000,
                            total=5000, capped_total=5000),
        ],
        daily_total=25000,
        welcome_bonus=50000,
        total=75000,
    )
    rows = parse(daily_breakdown_csv(lifetime))

    assert [r[0] for r in rows[1:]] == [
        "2025-01-20", "2025-01-21", "welcome_bonus", "wallet_bonus", "verification_bonus", "lifetime_total"
    ]
    assert all(len(r) == len(rows[0]) for r in rows)
    assert rows[-1][-1] == "75000"


def test_suspicion_csv_joins_reason_codes():
    record = SuspicionRecord(
        user_id="u1", score=35, level=SuspicionLevel.medium,
        reasons=["no_content_high_pending", "no_activity_pending"], pending_reward=150000,
    )
    rows = parse(suspicion_csv([record]))

    row = dict(zip(rows[0], rows[1]))
    assert row["level"] == "medium"
    assert row["reasons"] == "no_content_high_pending; no_activity_pending"
    assert row["pending_reward"] == "150000"


def test_reconciliation_csv_appends_failed_users():
    report = ReconciliationReport(
        cutoff=datetime(2025, 1, 31),
        total=2,
        processed=2,
        results=[ReconciliationResult(user_id="u1")],
        failures=[UserFailure(user_id="u2", error="store timeout", retryable=True)],
    )
    rows = parse(reconciliation_csv(report))

    assert all(len(r) == len(rows[0]) for r in rows)
    failed = dict(zip(rows[0], rows[2]))
    assert failed["user_id"] == "u2"
    assert failed["recomputed_total"] == ""
    assert failed["error"] == "store timeout"
    assert failed["retryable"] == "yes"

"""
Export Service - CSV downloads of reward reports

UTF-8 with a byte-order mark so spreadsheet tools pick the right encoding.
Numbers are written as plain integers.
"""
import csv
import io
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Sequence

from funfarm_rewards.schemas import (
    LifetimeReward, ReconciliationReport, SuspicionRecord
)

BOM = "\ufeff"


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value)
    return value


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """Header row plus data rows; quotes inside values are doubled"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(value) for value in row])
    return BOM + buffer.getvalue()


RECONCILIATION_HEADERS = [
    "user_id", "display_name", "pending_reward", "approved_reward", "camly_balance",
    "persisted_total", "recomputed_total", "delta", "direction", "large_discrepancy",
    "target_pending", "quality_posts", "normal_posts", "likes", "comments", "shares",
    "friendships", "warnings", "error", "retryable",
]


def reconciliation_csv(results) -> str:
    """One row per reconciled user, then one row per user that could not be reconciled"""
    failures = []
    if isinstance(results, ReconciliationReport):
        failures = results.failures
        results = results.results
    rows: List[List[Any]] = []
    for r in results:
        rows.append([
            r.user_id, r.display_name, r.persisted_pending, r.persisted_approved, r.persisted_claimed,
            r.persisted_total, r.recomputed_total, r.delta, r.direction, r.large_discrepancy,
            r.target_pending, r.quality_posts, r.normal_posts, r.likes, r.comments, r.shares,
            r.friendships, r.warnings,
            None, None,
        ])
    blank = [None] * (len(RECONCILIATION_HEADERS) - 3)
    for f in failures:
        rows.append([f.user_id] + blank + [f.error, f.retryable])
    return to_csv(RECONCILIATION_HEADERS, rows)


DAILY_HEADERS = [
    "date", "quality_posts", "normal_posts", "likes_first_tier", "likes_later_tier",
    "quality_comments", "normal_comments", "quality_shares", "normal_shares", "friendships",
    "post_reward", "like_reward", "comment_reward", "share_reward", "friendship_reward",
    "total", "capped_total",
]


def daily_breakdown_csv(lifetime: LifetimeReward) -> str:
    """One row per active day and a closing total row with the bonuses"""
    rows = [
        [
            d.day, d.quality_posts, d.normal_posts, d.likes_first_tier, d.likes_later_tier,
            d.quality_comments, d.normal_comments, d.quality_shares, d.normal_shares, d.friendships,
            d.post_reward, d.like_reward, d.comment_reward, d.share_reward, d.friendship_reward,
            d.total, d.capped_total,
        ]
        for d in lifetime.days
    ]
    rows.append(["welcome_bonus"] + [""] * 15 + [lifetime.welcome_bonus])
    rows.append(["wallet_bonus"] + [""] * 15 + [lifetime.wallet_bonus])
    rows.append(["verification_bonus"] + [""] * 15 + [lifetime.verification_bonus])
    rows.append(["lifetime_total"] + [""] * 15 + [lifetime.total])
    return to_csv(DAILY_HEADERS, rows)


SUSPICION_HEADERS = [
    "user_id", "display_name", "pending_reward", "score", "level", "reasons",
    "fake_identity", "wallet_group",
]


def suspicion_csv(records: Iterable[SuspicionRecord]) -> str:
    return to_csv(SUSPICION_HEADERS, (
        [r.user_id, r.display_name, r.pending_reward, r.score, r.level, r.reasons,
         r.fake_identity, r.wallet_group]
        for r in records
    ))

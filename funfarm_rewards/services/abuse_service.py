"""
Abuse Detector - rule-based suspicion scoring

Every non-banned user gets an additive suspicion score from a fixed rule
table. Shared wallets and fake-identity signals are reported on their own
and never added to the score. The detector only recommends bans; the ban
itself is an external privileged call.
"""
import logging
import re
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from funfarm_rewards.config import settings
from funfarm_rewards.db.models import Comment, Post, Profile
from funfarm_rewards.errors import UserNotFound, ValidationError, store_errors
from funfarm_rewards.schemas import (
    AbuseReport, BanRecommendation, SuspicionLevel, SuspicionRecord,
    UserSnapshot, WalletGroup, WalletGroupSeverity
)

logger = logging.getLogger(__name__)

# Points added to the suspicion score when a rule fires
ABUSE_RULE_WEIGHTS = {
    "pending_very_high": 40,
    "pending_high": 20,
    "missing_avatar": 15,
    "short_display_name": 15,
    "prior_violation": 25,
    "no_content_high_pending": 20,
    "no_activity_pending": 15,
    "avatar_unverified": 10,
}

LEVEL_BANDS = (
    (70, SuspicionLevel.very_high),
    (50, SuspicionLevel.high),
    (30, SuspicionLevel.medium),
)

TEMP_MAIL_DOMAINS = frozenset({
    "tempmail.com", "temp-mail.org", "guerrillamail.com", "guerrillamail.org",
    "mailinator.com", "yopmail.com", "yopmail.fr", "yopmail.net",
    "10minutemail.com", "10minutemail.net", "throwaway.email", "tempail.com",
    "fakeinbox.com", "maildrop.cc", "mailnesia.com", "dispostable.com",
    "trashmail.com", "sharklasers.com", "guerrillamail.info", "grr.la",
    "pokemail.net", "spam4.me", "mytemp.email", "mohmal.com",
    "tempmailo.com", "tempr.email", "discard.email", "discardmail.com",
    "mailsac.com", "tempemailco.com", "emailondeck.com", "tempmailaddress.com",
    "getairmail.com", "moakt.com", "dropmail.me", "mailtemp.net",
    "tempsky.com", "tempmailin.com", "fakemailgenerator.com", "burnermail.io",
    "33mail.com", "inboxkitten.com",
})

FAKE_NAME_PATTERNS = (
    re.compile(r"^\d+$"),
    re.compile(r"^[a-z]{1,4}\d{5,}$", re.IGNORECASE),
    re.compile(r"^(test|user|admin|guest|demo)\d*$", re.IGNORECASE),
)

MIN_NAME_LENGTH = 3


def normalize_wallet(address: Optional[str]) -> Optional[str]:
    if not address or not address.strip():
        return None
    return address.strip().lower()


def has_usable_name(name: Optional[str]) -> bool:
    return bool(name) and len(name.strip()) >= MIN_NAME_LENGTH


def is_fake_name(name: Optional[str]) -> bool:
    if not has_usable_name(name):
        return True
    trimmed = name.strip()
    return any(pattern.match(trimmed) for pattern in FAKE_NAME_PATTERNS)


def is_temp_email(email: Optional[str]) -> bool:
    if not email or "@" not in email:
        return False
    domain = email.rsplit("@", 1)[1].strip().lower()
    return domain in TEMP_MAIL_DOMAINS


class AbuseService:
    """Scores users and groups shared wallets"""

    def level_for(self, score: int) -> SuspicionLevel:
        for threshold, level in LEVEL_BANDS:
            if score >= threshold:
                return level
        return SuspicionLevel.low

    def score_user(self, snapshot: UserSnapshot) -> Tuple[int, List[str]]:
        """Additive score clamped to [0, 100] and the reason codes that fired"""
        for field in ("pending_reward", "approved_reward", "camly_balance", "posts_count", "comments_count"):
            if getattr(snapshot, field) < 0:
                raise ValidationError(f"{field} must not be negative for user {snapshot.user_id}")

        pending = snapshot.pending_reward
        reasons = []
        if pending > settings.ABUSE_PENDING_VERY_HIGH:
            reasons.append("pending_very_high")
        elif pending > settings.ABUSE_PENDING_HIGH:
            reasons.append("pending_high")
        if not (snapshot.avatar_url and snapshot.avatar_url.strip()):
            reasons.append("missing_avatar")
        elif not snapshot.avatar_verified:
            reasons.append("avatar_unverified")
        if not has_usable_name(snapshot.display_name):
            reasons.append("short_display_name")
        if snapshot.violation_level > 0:
            reasons.append("prior_violation")
        if snapshot.posts_count == 0 and snapshot.comments_count == 0 \
                and pending > settings.ABUSE_NO_CONTENT_PENDING:
            reasons.append("no_content_high_pending")
        if snapshot.posts_count + snapshot.comments_count == 0 \
                and pending > settings.ABUSE_NO_ACTIVITY_PENDING:
            reasons.append("no_activity_pending")

        score = sum(ABUSE_RULE_WEIGHTS[reason] for reason in reasons)
        return max(0, min(100, score)), reasons

    def fake_identity_signals(self, snapshot: UserSnapshot) -> List[str]:
        signals = []
        if is_fake_name(snapshot.display_name):
            signals.append("fake_display_name")
        if is_temp_email(snapshot.email):
            signals.append("temp_email_domain")
        return signals

    def evaluate(self, snapshot: UserSnapshot) -> SuspicionRecord:
        score, reasons = self.score_user(snapshot)
        return SuspicionRecord(
            user_id=snapshot.user_id,
            display_name=snapshot.display_name,
            pending_reward=snapshot.pending_reward,
            score=score,
            level=self.level_for(score),
            reasons=reasons,
            fake_identity=self.fake_identity_signals(snapshot),
        )

    def detect_wallet_groups(self, snapshots: Iterable[UserSnapshot]) -> List[WalletGroup]:
        """Accounts sharing one wallet address, compared case-insensitively"""
        members: Dict[str, List[UserSnapshot]] = defaultdict(list)
        for snapshot in snapshots:
            wallet = normalize_wallet(snapshot.wallet_address)
            if wallet:
                members[wallet].append(snapshot)

        groups = []
        for wallet, users in members.items():
            if len(users) < 2:
                continue
            users.sort(key=lambda u: u.user_id)
            banned = [u.user_id for u in users if u.banned]
            critical = len(users) > 2 or bool(banned)
            groups.append(WalletGroup(
                wallet_address=wallet,
                user_ids=[u.user_id for u in users],
                banned_user_ids=banned,
                total_pending=sum(u.pending_reward for u in users),
                total_approved=sum(u.approved_reward for u in users),
                severity=WalletGroupSeverity.critical if critical else WalletGroupSeverity.elevated,
            ))
        groups.sort(key=lambda g: (-len(g.user_ids), g.wallet_address))
        return groups

    def scan(self, snapshots: Iterable[UserSnapshot]) -> AbuseReport:
        """Score the population and build the admin review report"""
        snapshots = list(snapshots)
        groups = self.detect_wallet_groups(snapshots)
        group_of = {uid: g.wallet_address for g in groups for uid in g.user_ids}

        records = []
        for snapshot in snapshots:
            if snapshot.banned:
                continue
            record = self.evaluate(snapshot)
            record.wallet_group = group_of.get(snapshot.user_id)
            records.append(record)
        records.sort(key=lambda r: (-r.score, r.user_id))

        by_id = {s.user_id: s for s in snapshots}
        suspicious = [
            r for r in records
            if r.score >= settings.ABUSE_REVIEW_THRESHOLD or r.wallet_group
        ]
        fake_identities = [r for r in records if r.fake_identity]
        incomplete = [
            r for r in records
            if not has_usable_name(r.display_name)
            and not (by_id[r.user_id].avatar_url or "").strip()
            and r.pending_reward > 0
        ]

        return AbuseReport(
            generated_at=datetime.utcnow(),
            scanned_users=len(records),
            suspicious=suspicious,
            wallet_groups=groups,
            fake_identities=fake_identities,
            incomplete_profiles=incomplete,
            recommendations=self.recommend_bans(records, groups, by_id),
        )

    def recommend_bans(
        self,
        records: List[SuspicionRecord],
        groups: List[WalletGroup],
        snapshots: Dict[str, UserSnapshot]
    ) -> List[BanRecommendation]:
        recommendations: Dict[str, BanRecommendation] = {}
        for group in groups:
            if group.severity != WalletGroupSeverity.critical:
                continue
            for user_id in group.user_ids:
                if snapshots[user_id].banned:
                    continue
                recommendations[user_id] = BanRecommendation(
                    user_id=user_id,
                    reason=f"shared_wallet:{group.size}_accounts",
                    wallet_address=group.wallet_address,
                    blacklist_wallet=True,
                )
        for record in records:
            if record.score < settings.ABUSE_BAN_RECOMMEND_THRESHOLD or record.user_id in recommendations:
                continue
            recommendations[record.user_id] = BanRecommendation(
                user_id=record.user_id,
                reason=f"suspicion_score:{record.score}",
                wallet_address=normalize_wallet(snapshots[record.user_id].wallet_address),
            )
        return sorted(recommendations.values(), key=lambda r: r.user_id)

    # ------------------------------------------
    # Store access
    # ------------------------------------------
    def _snapshot(self, profile: Profile, posts: int, comments: int) -> UserSnapshot:
        return UserSnapshot(
            user_id=profile.id,
            display_name=profile.display_name,
            email=profile.email,
            avatar_url=profile.avatar_url,
            avatar_verified=bool(profile.avatar_verified),
            email_verified=bool(profile.email_verified),
            violation_level=profile.violation_level or 0,
            pending_reward=profile.pending_reward or 0,
            approved_reward=profile.approved_reward or 0,
            camly_balance=profile.camly_balance or 0,
            wallet_address=profile.wallet_address,
            banned=bool(profile.banned),
            posts_count=posts,
            comments_count=comments,
            created_at=profile.created_at,
        )

    def load_snapshots(self, db: Session, user_ids: Optional[List[str]] = None) -> List[UserSnapshot]:
        """Profiles (banned ones included) with authored post/comment counts"""
        with store_errors("loading user snapshots"):
            query = db.query(Profile)
            post_counts = db.query(Post.author_id, func.count(Post.id)).group_by(Post.author_id)
            comment_counts = db.query(Comment.author_id, func.count(Comment.id)).group_by(Comment.author_id)
            if user_ids is not None:
                query = query.filter(Profile.id.in_(user_ids))
                post_counts = post_counts.filter(Post.author_id.in_(user_ids))
                comment_counts = comment_counts.filter(Comment.author_id.in_(user_ids))
            profiles = query.order_by(Profile.id).all()
            posts = dict(post_counts.all())
            comments = dict(comment_counts.all())

        return [self._snapshot(p, posts.get(p.id, 0), comments.get(p.id, 0)) for p in profiles]

    def evaluate_user(self, db: Session, user_id: str) -> SuspicionRecord:
        """
        Score one user, including wallet-group membership. Banned users
        are left out of review the same way scan leaves them out, so they
        are reported as not found.
        """
        snapshots = self.load_snapshots(db, [user_id])
        if not snapshots:
            raise UserNotFound(user_id)
        snapshot = snapshots[0]
        if snapshot.banned:
            logger.info(f"User {user_id} is banned; not scored")
            raise UserNotFound(user_id)
        record = self.evaluate(snapshot)

        wallet = normalize_wallet(snapshot.wallet_address)
        if wallet:
            with store_errors(f"reading wallet peers of user {user_id}"):
                peers = db.query(func.count(Profile.id)).filter(
                    func.lower(func.trim(Profile.wallet_address)) == wallet
                ).scalar() or 0
            if peers >= 2:
                record.wallet_group = wallet
        return record

    def run_scan(self, db: Session) -> AbuseReport:
        report = self.scan(self.load_snapshots(db))
        logger.info(
            f"Abuse scan: {report.scanned_users} users, {len(report.suspicious)} suspicious, "
            f"{len(report.wallet_groups)} wallet groups, {len(report.recommendations)} ban recommendations"
        )
        return report


# Singleton instance
abuse_service = AbuseService()

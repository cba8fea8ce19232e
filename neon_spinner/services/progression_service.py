# neon_spinner/services/progression_service.py
"""XP, levels, battle-pass rewards, rank bonuses and skin bookkeeping."""

import json
import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from neon_spinner.config.settings import (
    BATTLE_PASS_FREE,
    BATTLE_PASS_PREMIUM,
    DEFAULT_UNLOCKED_SKINS,
    RANK_TOP1_SKIN,
    RANK_TOP2_SKIN,
    RANK_TOP3_SKIN,
    RANK_TOP_N,
    SKIN_TYPES,
)
from neon_spinner.models.entities import (
    LeaderboardEntry,
    Session,
    SessionProfile,
    Skin,
)
from neon_spinner.services.persistence import GatewayError, PersistenceGateway
from neon_spinner.utils.helpers import random_neon_color

logger = logging.getLogger(__name__)


def level_for_xp(xp: int) -> int:
    """Level reached with xp points.

    Equal to floor((1 + sqrt(1 + 0.16 * xp)) / 2), evaluated with integer
    square roots so exact level thresholds never round down.
    """
    xp = max(0, int(xp))
    return (5 + math.isqrt(25 + 4 * xp)) // 10


def xp_for_level(level: int) -> int:
    """Total xp needed to reach level; level L costs 50 * L more than L - 1."""
    level = max(1, int(level))
    return 25 * level * (level - 1)


def level_progress(xp: int) -> Tuple[int, int, int]:
    """Return (level, xp earned inside the level, xp the level spans)."""
    level = level_for_xp(xp)
    base = xp_for_level(level)
    return level, max(0, int(xp)) - base, xp_for_level(level + 1) - base


def rewards_up_to(level: int, track: Dict[int, str]) -> List[Tuple[int, str]]:
    """Every (level, skin) of track at or below level, lowest first."""
    return sorted((lvl, skin) for lvl, skin in track.items() if lvl <= level)


def _rank_grants(position: int) -> List[str]:
    grants = []
    if position <= 2:
        grants.append(RANK_TOP3_SKIN)
    if position <= 1:
        grants.append(RANK_TOP2_SKIN)
    if position == 0:
        grants.append(RANK_TOP1_SKIN)
    return grants


def rank_bonus_symbols(entries: Iterable[LeaderboardEntry], username: str) -> List[str]:
    """Skins granted by username's place in the top of both rankings."""
    entries = list(entries)
    rankings = [
        sorted(entries, key=lambda e: e.recordEvasion or 0, reverse=True)[:RANK_TOP_N],
        sorted(entries, key=lambda e: e.recordDestruction or 0, reverse=True)[:RANK_TOP_N],
    ]

    symbols: List[str] = []
    for ranking in rankings:
        names = [entry.username for entry in ranking]
        if username in names:
            for symbol in _rank_grants(names.index(username)):
                if symbol not in symbols:
                    symbols.append(symbol)
    return symbols


def parse_unlocked_skins(csv: Optional[str]) -> List[str]:
    """Split a stored skin list, dropping blanks and duplicates."""
    if not csv or not isinstance(csv, str):
        return []
    types: List[str] = []
    for item in csv.split(","):
        item = item.strip()
        if item and item not in types:
            types.append(item)
    return types


def serialize_unlocked_skins(types: Iterable[str]) -> str:
    return ",".join(parse_unlocked_skins(",".join(types)))


def merge_unlocked_skins(csv: Optional[str], extra: Iterable[str]) -> str:
    """Add extra skin types to a stored list without duplicating any."""
    return serialize_unlocked_skins(parse_unlocked_skins(csv) + list(extra))


def parse_equipped_skin(raw: Optional[str]) -> Optional[Skin]:
    """Decode a stored equipped skin; malformed data yields None."""
    if not raw or not isinstance(raw, str) or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring unparseable equipped skin %r", raw)
        return None
    if not isinstance(data, dict) or not data.get("type"):
        logger.warning("Ignoring equipped skin without a type: %r", raw)
        return None
    return Skin(type=str(data["type"]), color=str(data.get("color") or ""))


def build_skin_set(types: Iterable[str], rng=random) -> List[Skin]:
    """Catalogue skins matching types, or the default set if none match."""
    wanted = set(types)
    skins = [Skin(t, random_neon_color(rng)) for t in SKIN_TYPES if t in wanted]
    if not skins:
        skins = [Skin(t, random_neon_color(rng)) for t in DEFAULT_UNLOCKED_SKINS]
    return skins


def resolve_equipped_skin(skins: List[Skin], saved: Optional[Skin]) -> Optional[Skin]:
    """The saved skin if it is owned, otherwise the first owned skin."""
    if saved is not None:
        for skin in skins:
            if skin.type == saved.type:
                return Skin(type=saved.type, color=saved.color or skin.color)
    return skins[0] if skins else None


@dataclass(frozen=True)
class RunSave:
    """What a finished run sends to the gateway, copied out of the session."""

    username: str
    record_evasion: int
    record_destruction: int
    has_premium: bool
    score: int
    play_time_seconds: int


class ProgressionService:
    """Applies stored profiles to the session and keeps rewards in sync."""

    def __init__(self, session: Session, gateway: PersistenceGateway, rng=random):
        self.session = session
        self.gateway = gateway
        self.rng = rng

    def load_profile(self) -> SessionProfile:
        try:
            return self.gateway.get_session()
        except GatewayError as e:
            logger.warning("Could not load session, continuing logged out: %s", e)
            return SessionProfile(loggedIn=False)

    def apply_profile(self, profile: SessionProfile):
        """Copy a stored profile into the session, repairing bad data."""
        session = self.session
        if profile.loggedIn:
            session.username = profile.username
            session.record_evasion = int(profile.recordEvasion or 0)
            session.record_destruction = int(profile.recordDestruction or 0)
            session.xp = int(profile.xp or 0)
            session.has_premium = bool(profile.hasPremium)
            session.player_skins = build_skin_set(
                parse_unlocked_skins(profile.unlockedSkinsCsv), self.rng
            )
            session.current_skin = resolve_equipped_skin(
                session.player_skins, parse_equipped_skin(profile.equippedSkinJson)
            )
        else:
            session.username = None
            session.xp = 0
            session.has_premium = False
            session.player_skins = build_skin_set(DEFAULT_UNLOCKED_SKINS, self.rng)
            session.current_skin = self.rng.choice(session.player_skins)
        session.loaded = True

    def load_session(self) -> SessionProfile:
        """Fetch the profile, apply it and claim any pending rewards."""
        profile = self.load_profile()
        self.apply_profile(profile)
        if profile.loggedIn:
            self.check_and_claim_rewards()
        return profile

    def claim_rewards(self, xp: int, has_premium: bool) -> Tuple[List[str], List[str]]:
        """Unlock every battle-pass reward at or below the level for xp.

        Only talks to the gateway. Returns the newly unlocked types and every
        type the gateway confirmed, stopping at the first failure.
        """
        level = level_for_xp(xp)
        tracks = [("free", BATTLE_PASS_FREE)]
        if has_premium:
            tracks.append(("premium", BATTLE_PASS_PREMIUM))

        unlocked, granted = [], []
        for tier, track in tracks:
            for reward_level, skin_type in rewards_up_to(level, track):
                try:
                    already = self.gateway.unlock_skin(skin_type)
                except GatewayError as e:
                    logger.warning("Reward claim stopped at %s level %d: %s", tier, reward_level, e)
                    return unlocked, granted
                if not already:
                    logger.info(
                        "Unlocked %s reward for level %d: %s", tier, reward_level, skin_type
                    )
                    unlocked.append(skin_type)
                granted.append(skin_type)
        return unlocked, granted

    def check_and_claim_rewards(self) -> List[str]:
        """Claim rewards for the session's xp and add them to its skins."""
        session = self.session
        if not session.username:
            return []
        unlocked, granted = self.claim_rewards(session.xp, session.has_premium)
        for skin_type in granted:
            self._add_skin(skin_type)
        return unlocked

    def _add_skin(self, skin_type: str):
        if not any(skin.type == skin_type for skin in self.session.player_skins):
            self.session.player_skins.append(Skin(skin_type, random_neon_color(self.rng)))

    # Finished runs
    def prepare_run(self, score: int, play_time_seconds: int) -> Optional[RunSave]:
        """Copy what a finished run saves out of the session; None for guests."""
        session = self.session
        if not session.username:
            return None
        return RunSave(
            username=session.username,
            record_evasion=session.record_evasion,
            record_destruction=session.record_destruction,
            has_premium=session.has_premium,
            score=score,
            play_time_seconds=play_time_seconds,
        )

    def save_run(self, run: RunSave) -> Optional[Tuple[int, List[str]]]:
        """Store the run and claim rewards for the new xp.

        Never touches the session, so it may run on a worker thread.
        Returns the new xp and the granted reward types, or None on failure.
        """
        try:
            new_xp = self.gateway.save_records(
                run.record_evasion,
                run.record_destruction,
                run.play_time_seconds,
                run.score,
            )
        except GatewayError as e:
            logger.warning("Run not saved: %s", e)
            return None

        _, granted = self.claim_rewards(int(new_xp), run.has_premium)
        return int(new_xp), granted

    def apply_run(
        self, run: RunSave, result: Optional[Tuple[int, List[str]]]
    ) -> Optional[int]:
        """Copy the outcome of save_run into the session."""
        session = self.session
        if result is None or session.username != run.username:
            return None

        new_xp, granted = result
        previous_level = level_for_xp(session.xp)
        session.xp = new_xp
        if level_for_xp(new_xp) > previous_level:
            logger.info("%s reached level %d", run.username, level_for_xp(new_xp))
        for skin_type in granted:
            self._add_skin(skin_type)
        return session.xp

    def record_run(self, score: int, play_time_seconds: int) -> Optional[int]:
        """Persist a finished run and apply the result in one go."""
        run = self.prepare_run(score, play_time_seconds)
        if run is None:
            return None
        return self.apply_run(run, self.save_run(run))

    def save_best_records(self, record_evasion: int, record_destruction: int) -> bool:
        """Store the high scores alone, without adding xp."""
        try:
            self.gateway.save_records(record_evasion, record_destruction, 0, 0)
        except GatewayError as e:
            logger.warning("Records not saved: %s", e)
            return False
        return True

    def equip_skin(self, skin_type: str, color: Optional[str] = None) -> Skin:
        """Equip an owned skin and persist the choice."""
        owned = next((s for s in self.session.player_skins if s.type == skin_type), None)
        if owned is None:
            raise ValueError(f"skin {skin_type!r} is not unlocked")

        skin = Skin(type=skin_type, color=color or owned.color)
        self.session.current_skin = skin
        if self.session.username:
            try:
                self.gateway.save_equipped_skin(skin)
            except GatewayError as e:
                logger.warning("Equipped skin not saved: %s", e)
        return skin

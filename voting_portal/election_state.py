"""Read side of the portal: the voter's election snapshot and the admin dashboard.

Both reads return a ``mode`` of ``"live"`` or ``"degraded"``. Degraded data
comes from the static dataset and is never cached or mixed with live rows.
"""
import logging
import time
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel

from voting_portal import procedures
from voting_portal.cache import read_cache
from voting_portal.errors import BackendUnavailable
from voting_portal.models.election_model import (
    Candidate,
    ElectionSettings,
    ElectionSnapshot,
    Position,
    PositionWithCandidates,
)
from voting_portal.models.voter_model import VoterProfile
from voting_portal.results import PositionResult, tally_election
from voting_portal.storage import load_fallback_election
from voting_portal.storage_mongo import storage

logger = logging.getLogger(__name__)


class DashboardStats(BaseModel):
    total_voters: int = 0
    voted_count: int = 0
    admin_count: int = 0
    source: Literal["bulk", "fallback", "static"]
    cache_timestamp: float
    load_time_ms: int = 0


class AdminDashboard(BaseModel):
    mode: Literal["live", "degraded"]
    reason: Optional[str] = None
    settings: ElectionSettings
    positions: List[Position]
    candidates: List[Candidate]
    voters: List[VoterProfile]
    stats: DashboardStats
    results: List[PositionResult]


def _load_tallies(positions: List[Position]) -> Dict[str, Dict[str, int]]:
    return {
        p.id: {
            "abstain": procedures.get_abstain_votes_count(p.id),
            "total": procedures.get_total_votes_count(p.id),
        }
        for p in positions
    }


def _active(positions: List[Position]) -> List[Position]:
    return [p for p in positions if p.is_active]


def _assemble(positions, candidates, tallies, user_votes) -> List[PositionWithCandidates]:
    assembled = []
    for position in positions:
        tally = tallies.get(position.id, {})
        assembled.append(
            PositionWithCandidates(
                **position.model_dump(),
                candidates=[c for c in candidates if c.position_id == position.id and c.is_active],
                user_vote=user_votes.get(position.id),
                abstain_count=tally.get("abstain", 0),
                total_votes=tally.get("total", 0),
            )
        )
    return assembled


def load_election_snapshot(voter: Optional[VoterProfile] = None) -> ElectionSnapshot:
    try:
        settings = read_cache.get_or_load("settings", storage.get_settings)
        positions = _active(read_cache.get_or_load("positions", storage.list_positions))
        candidates = read_cache.get_or_load("candidates", storage.list_candidates)
        tallies = read_cache.get_or_load("tallies", lambda: _load_tallies(positions))
        eligible = read_cache.get_or_load("eligible_voters", storage.count_eligible_voters)
        user_votes = {}
        if voter is not None:
            user_votes = {
                v.position_id: v.model_dump() for v in storage.list_votes_for_voter(voter.id)
            }
    except BackendUnavailable as e:
        logger.error(f"Election snapshot unavailable, serving static data: {e}")
        return degraded_snapshot(str(e))

    return ElectionSnapshot(
        mode="live",
        settings=settings,
        positions=_assemble(positions, candidates, tallies, user_votes),
        total_eligible_voters=eligible,
    )


def degraded_snapshot(reason: str) -> ElectionSnapshot:
    settings, positions, candidates = load_fallback_election()
    return ElectionSnapshot(
        mode="degraded",
        reason=reason,
        settings=settings,
        positions=_assemble(positions, candidates, {}, {}),
        total_eligible_voters=0,
    )


class ResultsView(BaseModel):
    mode: Literal["live", "degraded"]
    reason: Optional[str] = None
    results: List[PositionResult]


def load_results() -> ResultsView:
    snapshot = load_election_snapshot()
    return ResultsView(
        mode=snapshot.mode,
        reason=snapshot.reason,
        results=tally_election(
            snapshot.positions,
            [c for p in snapshot.positions for c in p.candidates],
            {p.id: p.abstain_count for p in snapshot.positions},
            snapshot.total_eligible_voters,
        ),
    )


def _read_dashboard() -> dict:
    started = time.monotonic()
    try:
        data = procedures.get_admin_dashboard_data()
        positions = [Position.from_doc(doc) for doc in data["positions"]]
        candidates = [Candidate.from_doc(doc) for doc in data["candidates"]]
        source = "bulk"
    except BackendUnavailable as e:
        logger.warning(f"Bulk dashboard read unavailable, using individual reads: {e}")
        data = {"voters": storage.list_voters(), "settings": storage.get_settings()}
        positions = storage.list_positions()
        candidates = storage.list_candidates()
        source = "fallback"

    voters = data["voters"]
    abstain_counts = {p.id: procedures.get_abstain_votes_count(p.id) for p in positions}
    eligible = [v for v in voters if not v.is_admin]
    stats = DashboardStats(
        total_voters=len(eligible),
        voted_count=len([v for v in eligible if v.has_voted]),
        admin_count=len(voters) - len(eligible),
        source=source,
        cache_timestamp=time.time(),
        load_time_ms=int((time.monotonic() - started) * 1000),
    )
    return {
        "settings": data["settings"],
        "positions": positions,
        "candidates": candidates,
        "voters": voters,
        "stats": stats,
        "results": tally_election(positions, candidates, abstain_counts, len(eligible)),
    }


def load_admin_dashboard() -> AdminDashboard:
    try:
        data = read_cache.get_or_load("dashboard", _read_dashboard)
    except BackendUnavailable as e:
        logger.error(f"Admin dashboard unavailable, serving static data: {e}")
        settings, positions, candidates = load_fallback_election()
        return AdminDashboard(
            mode="degraded",
            reason=str(e),
            settings=settings,
            positions=positions,
            candidates=candidates,
            voters=[],
            stats=DashboardStats(source="static", cache_timestamp=time.time()),
            results=tally_election(positions, candidates, {}, 0),
        )
    return AdminDashboard(mode="live", **data)

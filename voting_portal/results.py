"""Display-only tallies derived from the stored vote counts.

Nothing here is an official determination: the "winner" label marks the
leading candidate for display. A tie at the top is flagged with ``is_tie``
and the label stays on the first candidate in listing order.
"""
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from voting_portal.models.election_model import Candidate, Position


class CandidateResult(BaseModel):
    candidate_id: str
    name: str
    vote_count: int
    percentage: float
    rank: int
    is_winner: bool = False


class PositionResult(BaseModel):
    position_id: str
    title: str
    order_index: int
    candidates: List[CandidateResult]
    candidate_votes: int
    abstain_count: int
    abstain_percentage: float
    total_votes: int
    participation_rate: int
    winner_id: Optional[str] = None
    is_tie: bool = False


def percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 1)


def participation_rate(total_votes: int, eligible_voters: int) -> int:
    if eligible_voters <= 0:
        return 0
    return round(total_votes / eligible_voters * 100)


def rank_candidates(candidates: Iterable[Candidate]) -> List[Candidate]:
    # sorted() is stable: equal counts keep their listing order
    return sorted(candidates, key=lambda c: c.vote_count or 0, reverse=True)


def tally_position(
    position: Position,
    candidates: Iterable[Candidate],
    abstain_count: int,
    eligible_voters: int,
) -> PositionResult:
    ranked = rank_candidates(c for c in candidates if c.position_id == position.id)
    candidate_votes = sum(c.vote_count or 0 for c in ranked)
    total_votes = candidate_votes + abstain_count

    top = ranked[0].vote_count if ranked else 0
    is_tie = len(ranked) > 1 and top > 0 and ranked[1].vote_count == top
    winner_id = ranked[0].id if ranked and top > 0 else None

    results = [
        CandidateResult(
            candidate_id=c.id,
            name=c.full_name,
            vote_count=c.vote_count or 0,
            percentage=percentage(c.vote_count or 0, total_votes),
            rank=index + 1,
            is_winner=c.id == winner_id,
        )
        for index, c in enumerate(ranked)
    ]
    return PositionResult(
        position_id=position.id,
        title=position.title,
        order_index=position.order_index,
        candidates=results,
        candidate_votes=candidate_votes,
        abstain_count=abstain_count,
        abstain_percentage=percentage(abstain_count, total_votes),
        total_votes=total_votes,
        participation_rate=participation_rate(total_votes, eligible_voters),
        winner_id=winner_id,
        is_tie=is_tie,
    )


def tally_election(
    positions: Iterable[Position],
    candidates: Iterable[Candidate],
    abstain_counts: Dict[str, int],
    eligible_voters: int,
) -> List[PositionResult]:
    candidates = list(candidates)
    return [
        tally_position(position, candidates, abstain_counts.get(position.id, 0), eligible_voters)
        for position in sorted(positions, key=lambda p: p.order_index)
    ]

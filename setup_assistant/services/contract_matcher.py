"""Fuzzy contract matching for cross-entity linking.

Links a receivable/expense that mentions a client or project by name to
one of the team's contracts (persisted, or extracted earlier in the same
request). Names are compared case- and accent-insensitively:

    exact match                              → 1.00
    exact after removing "(...)" fragments   → 0.95
    one name contains the other              → 0.80
    otherwise                                → normalized Levenshtein similarity

The best candidate at or above the threshold wins; ties keep the first
contract in snapshot order.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog
from rapidfuzz.distance import Levenshtein

from setup_assistant.schemas.domain import ContractSnapshot
from setup_assistant.schemas.drafts import ContractLink
from setup_assistant.utils.text import fold, strip_parentheses

logger = structlog.get_logger(__name__)

DEFAULT_THRESHOLD = 0.6


@dataclass
class MatchCandidate:
    """A contract scored against a reference string.

    Attributes:
        contract: The candidate contract
        score: Similarity in [0, 1]
        matched_on: "client" or "project", whichever name scored higher
    """
    contract: ContractSnapshot
    score: float
    matched_on: str


def name_similarity(search: str, target: str) -> float:
    """Similarity of two names in [0, 1]."""
    s = fold(search)
    t = fold(target)
    if not s or not t:
        return 0.0
    if s == t:
        return 1.0

    clean_s = strip_parentheses(s)
    clean_t = strip_parentheses(t)
    if clean_s and clean_s == clean_t:
        return 0.95

    if s in t or t in s:
        return 0.8

    return Levenshtein.normalized_similarity(clean_s, clean_t)


class ContractMatcher:
    """Finds the contract a free-text reference most likely points to."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold

    def score(self, reference: str, contract: ContractSnapshot) -> MatchCandidate:
        client_score = name_similarity(reference, contract.client_name)
        project_score = name_similarity(reference, contract.project_name)
        if project_score > client_score:
            return MatchCandidate(contract=contract, score=project_score, matched_on="project")
        return MatchCandidate(contract=contract, score=client_score, matched_on="client")

    def find_all(
        self,
        reference: str,
        contracts: Sequence[ContractSnapshot],
    ) -> List[MatchCandidate]:
        """All candidates at or above the threshold, best first."""
        if not reference or not reference.strip():
            return []
        candidates = [self.score(reference, contract) for contract in contracts]
        matches = [c for c in candidates if c.score >= self.threshold]
        # sorted() is stable: equal scores keep snapshot order
        return sorted(matches, key=lambda c: c.score, reverse=True)

    def find_best(
        self,
        reference: str,
        contracts: Sequence[ContractSnapshot],
    ) -> Optional[MatchCandidate]:
        matches = self.find_all(reference, contracts)
        return matches[0] if matches else None

    def link(
        self,
        reference: str,
        contracts: Sequence[ContractSnapshot],
    ) -> Optional[ContractLink]:
        """Build a ContractLink for the best match, or None below the threshold."""
        best = self.find_best(reference, contracts)
        if best is None:
            logger.debug("contract_match_not_found", reference=reference, candidates=len(contracts))
            return None

        logger.debug(
            "contract_matched",
            reference=reference,
            client=best.contract.client_name,
            project=best.contract.project_name,
            score=round(best.score, 3),
            matched_on=best.matched_on,
        )
        return ContractLink(
            reference=reference,
            client_name=best.contract.client_name,
            project_name=best.contract.project_name,
            score=round(best.score, 4),
            contract_id=best.contract.contract_id,
            draft_key=best.contract.draft_key,
        )

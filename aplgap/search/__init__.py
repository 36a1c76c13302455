"""
Search - Bounded-horizon rollout search and the policy runner.

The rollout search approximates the best action at any state; the runner
drives any DecisionPolicy (the search itself, or an APL) through a fight
and records the resulting trace.
"""

from .rollout import RolloutSearch, CandidateScore, BranchResult, BranchComparison
from .policy import Decision, DecisionPolicy, RolloutPolicy
from .runner import PolicyRunner, RunPhase

__all__ = [
    "RolloutSearch",
    "CandidateScore",
    "BranchResult",
    "BranchComparison",
    "Decision",
    "DecisionPolicy",
    "RolloutPolicy",
    "PolicyRunner",
    "RunPhase",
]

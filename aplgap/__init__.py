"""
aplgap - Decision-quality analysis for action priority lists.

A deterministic engine that measures how far a rule-based rotation (an APL)
falls short of a bounded-horizon optimal policy. It provides:
- A combat state model and effect engine behind a per-spec adapter
- A rollout search approximating the best action at any state
- An interpreter for the APL rule language
- A divergence analyzer that ranks the moments the APL chose worse
"""

__version__ = "0.1.0"

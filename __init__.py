"""
Operations Agent v1.0 - Autonomous Operations with Safety Gates

An asyncio service that polls human-approved tasks and runs them through
tool-using reasoning agents against a commerce store and a site repository.

Features:
- Task lifecycle with mandatory human validation
- Bounded multi-turn tool-calling conversation loop
- Daily cost and token budget with timezone-aware reset
- Hourly rate limit on agent task suggestions
- Circuit breaker with explicit restart
- Human-gated test workflow with its own budget
- Per-channel event log with in-process subscribers
"""

__version__ = "1.0.0"
__author__ = "Operations Agent Team"

"""
Background jobs for classifier feedback learning.

Jobs:
- learn_family_bias: Every 6 hours, turn unprocessed corrections into family bias ledgers
- aggregate_global_patterns: Monthly, aggregate anonymized correction patterns across families
- scheduler: Runs both on their triggers with retries
"""

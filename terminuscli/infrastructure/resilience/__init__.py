"""API Resilience Implementations.

Contains the retrying request executor, the credential provider that refreshes
the bearer token, the workflow tracker, and the cancellation scope they share.
Bounded Context: API Resilience
"""

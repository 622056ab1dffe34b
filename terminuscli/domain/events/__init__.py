"""Domain Event definitions.

Represents significant occurrences in the request and workflow layers
(attempts, retries, token refreshes, polls) that other parts of the system
might react to.
"""

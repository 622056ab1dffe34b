"""Domain models: value objects, API resources and workflow snapshots."""

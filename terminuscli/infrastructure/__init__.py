"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (the HTTP API, the session
files on disk, the console) by implementing the interfaces defined in the
domain layer.
"""

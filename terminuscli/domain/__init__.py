"""Domain Layer: models, errors, events and the ports (interfaces) implemented by infrastructure."""

"""Resource services: thin wrappers that build API paths and bodies and call the executor."""

"""
Service initialization.

Logging setup and construction of the chain client, engine and
collaborators from settings.
"""

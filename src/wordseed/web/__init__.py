"""Web API for the practice engine."""

"""Core engine, services, models and configuration."""

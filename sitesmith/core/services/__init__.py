"""
Preview services — the live preview server, path watchers and the
change event bus.
"""

"""Preview HTTP surface (Flask)."""

"""CLI commands, registered on the group in ``sitesmith.main``."""

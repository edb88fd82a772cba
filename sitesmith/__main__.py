"""Allow ``python -m sitesmith``."""

from sitesmith.main import cli

cli()

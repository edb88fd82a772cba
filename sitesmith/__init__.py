"""
sitesmith — a static site generator with a live preview server.

Quick use::

    from sitesmith import create_environment

    env = create_environment("config.yml")
    asyncio.run(env.build())
"""

from __future__ import annotations

__version__ = "0.4.0"


def create_environment(config, work_dir=None):  # type: ignore[no-untyped-def]
    """Create an Environment from a config path, mapping or SiteConfig."""
    from sitesmith.core.engine.environment import Environment

    return Environment.create(config, work_dir)


__all__ = ["__version__", "create_environment"]

"""
Bundled plugins, loaded into every environment.

Each module exposes ``setup(env)`` which registers its content
plugins, template plugins and views.
"""

"""User interfaces: command line and preview web server."""

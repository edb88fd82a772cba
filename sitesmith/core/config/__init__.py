"""Site configuration loading."""

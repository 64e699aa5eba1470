"""Bundled configuration resources and role policy constants."""

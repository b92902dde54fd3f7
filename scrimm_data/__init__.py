"""Data files shipped with Scrimm (search providers)."""

"""Flask web layer for the instructor portal."""

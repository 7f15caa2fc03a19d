"""FastAPI surface for the position engine."""

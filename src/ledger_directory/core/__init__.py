"""Core infrastructure shared by the directory components."""

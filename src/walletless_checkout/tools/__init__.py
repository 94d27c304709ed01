"""Request handlers shared by the HTTP routes."""

"""HTTP route modules for server.py."""

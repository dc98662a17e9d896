"""Administrative billing endpoints."""

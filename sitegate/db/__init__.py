"""Database persistence for SiteGate."""

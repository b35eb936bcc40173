"""HTTP routes for the identity service."""

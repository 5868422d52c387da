"""Clients for the external collaborators: identity provider, profile store."""

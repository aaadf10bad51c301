"""Subscan modules."""

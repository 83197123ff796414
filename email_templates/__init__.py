"""Jinja2 templates for outgoing email, shipped as package data."""

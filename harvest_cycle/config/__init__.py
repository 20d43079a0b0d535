"""Configuration for the harvest cycle."""

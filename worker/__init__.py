"""Perfboard worker package: scoring engine, notifications and background jobs."""

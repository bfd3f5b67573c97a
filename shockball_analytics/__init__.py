"""Shockball coaching analytics: match data sync service."""

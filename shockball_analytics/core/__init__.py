"""Configuration, logging, database, metrics, auth and scheduling."""

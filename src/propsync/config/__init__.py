"""Settings and per-backend store configuration."""

"""HTTP endpoints for rooms, messages, users and push configuration."""

"""Core components: message definition resolution and MCAP storage."""

"""Domain enums and engine configuration."""

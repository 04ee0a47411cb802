"""Configuration and error types shared across scene-pilot."""

"""Output formatting: JSON, quiet, and Rich-rendered human output."""

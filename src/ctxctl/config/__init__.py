"""Configuration: code-baked defaults, ctxctl.toml overrides, env vars, CLI flags."""

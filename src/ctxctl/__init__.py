"""ctxctl: hierarchical context resolution for coding assistants."""

__version__ = "0.1.0"

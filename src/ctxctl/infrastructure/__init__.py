"""Infrastructure layer: layer sources, the layer store, the bundle cache.

Depends on the domain layer and third-party libs only. It must never
import from services, commands, or output.
"""

"""roar - render an Argo CD app-of-apps chart into per-application manifests."""

__version__ = "0.1.0"

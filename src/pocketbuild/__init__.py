"""PocketBuild - on-device Android application build pipeline."""

__version__ = "0.1.0"

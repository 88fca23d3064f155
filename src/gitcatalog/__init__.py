"""gitcatalog: catalog and installer for packages published as git repositories."""

__version__ = "0.1.0"

"""figsync: publish code generated from design documents as reviewable pull requests."""

__version__ = "0.1.0"

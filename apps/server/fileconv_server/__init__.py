"""HTTP service that converts, compresses and repackages images and PDFs."""

__version__ = "0.1.0"

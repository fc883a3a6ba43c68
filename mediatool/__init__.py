"""mediatool — extract, rename and remux media files in bulk."""

__version__ = "1.0.0"

"""cmifloppy

Core package for editing Fairlight CMI floppy-disk images by driving the
CMI OS (cmios9) over its text console, and for converting images between
container formats with external tools.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"

"""Resume Ninja usage and credit accounting backend."""
__version__ = "0.1.0"

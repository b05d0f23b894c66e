"""Version of the hyperharness package, also reported by the tool bridge."""

VERSION_INFO = (0, 3, 0)
__version__ = ".".join(str(part) for part in VERSION_INFO)

__all__ = ["__version__", "VERSION_INFO"]

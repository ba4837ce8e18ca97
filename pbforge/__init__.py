"""pbforge - Protobuf to Python code generator."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pbforge")
except PackageNotFoundError:
    __version__ = "(local)"

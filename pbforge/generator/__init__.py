"""pbforge schema parser and code generator."""

from .parser import ParseError as ParseError
from .parser import ValidationError as ValidationError
from .parser import load as load
from .parser import parse as parse
from .shapes import ResolutionError as ResolutionError
from .shapes import UnsupportedTypeError as UnsupportedTypeError
from .types import *

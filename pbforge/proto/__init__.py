"""Runtime support for pbforge generated code."""

from . import wire as wire
from .serialization import DecodeError as DecodeError
from .serialization import Message as Message
from .serialization import OneofVariant as OneofVariant
from .serialization import ProtoEnum as ProtoEnum
from .wire import WireError as WireError

"""Python code generator for protobuf schemas."""

import logging
from dataclasses import dataclass, field
from importlib import resources

from dataclasses_json import DataClassJsonMixin
from jinja2 import Environment, PackageLoader

from pbforge import __version__

from .messages import MessageEmitter
from .shapes import file_alias, local_name
from .types import ProtoEnum, ProtoFile, ProtoMessage, ProtoSchema
from .util import escape_identifier
from .writer import CodeWriter

logger = logging.getLogger(__name__)

RUNTIME_FILES = [
    "__init__.py",
    "wire.py",
    "serialization.py",
]

env = Environment(
    loader=PackageLoader("pbforge.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("python.py.j2")


@dataclass
class GeneratorOptions(DataClassJsonMixin):
    """Knobs for a generation run.

    ``modules`` maps an imported schema file to the module its generated
    code lives in; unmapped files follow the file path
    (``common/types.proto`` -> ``common.types_pb``).
    """

    runtime_import: str = "pbforge_runtime"
    modules: dict[str, str] = field(default_factory=dict)
    dense_dispatch_limit: int = 64


@dataclass
class EnumView:
    name: str
    values: list[tuple[str, int]]


def collect_messages(proto_file: ProtoFile) -> list[ProtoMessage]:
    """All messages of ``proto_file``, top-level first, then nested breadth first.

    Synthetic map entry messages are skipped; map fields are emitted inline.
    """
    messages = list(proto_file.messages)
    i = 0
    while i < len(messages):
        messages.extend(m for m in messages[i].messages if not m.map_entry)
        i += 1
    return messages


def collect_enums(proto_file: ProtoFile, messages: list[ProtoMessage]) -> list[ProtoEnum]:
    enums = list(proto_file.enums)
    for message in messages:
        enums.extend(message.enums)
    return enums


def module_for(path: str, options: GeneratorOptions) -> str:
    if path in options.modules:
        return options.modules[path]
    stem = path.removesuffix(".proto").replace("-", "_")
    return stem.replace("/", ".") + "_pb"


def _imported_files(messages: list[ProtoMessage], file: str) -> list[str]:
    """Schema files, other than ``file``, declaring a type some field refers to."""
    found: set[str] = set()
    for message in messages:
        for f in message.fields:
            for ref in (f, f.map_key, f.map_value):
                if ref is not None and ref.type_file is not None and ref.type_file != file:
                    found.add(ref.type_file)
    return sorted(found)


def _enum_view(enum: ProtoEnum) -> EnumView:
    values = [(escape_identifier(v.name), v.number) for v in enum.values]
    return EnumView(local_name(enum.full_name, enum.package), values)


def render(schema: ProtoSchema, options: GeneratorOptions | None = None) -> str:
    """Render the main file of ``schema`` to Python source code.

    Raises:
        ResolutionError: if any field cannot be generated. Nothing is
            rendered in that case.
    """
    options = options or GeneratorOptions()
    proto_file = schema.main
    package = proto_file.package

    messages = collect_messages(proto_file)
    enums = [_enum_view(e) for e in collect_enums(proto_file, messages)]
    class_names = {local_name(m.full_name, m.package) for m in messages}
    taken = class_names | {e.name for e in enums}

    emitters = [
        MessageEmitter(
            m,
            local_name(m.full_name, m.package),
            proto_file.name,
            taken,
            options.dense_dispatch_limit,
        )
        for m in messages
    ]
    logger.info(
        "generating %s: %d messages, %d enums", proto_file.name, len(emitters), len(enums)
    )

    w = CodeWriter()
    for emitter in emitters:
        emitter.emit(w)

    imports = [
        (module_for(path, options), file_alias(path))
        for path in _imported_files(messages, proto_file.name)
    ]
    for module, alias in imports:
        logger.debug("importing %s as %s", module, alias)

    return template.render(
        version=__version__,
        source=proto_file.name,
        package=package,
        runtime_import=options.runtime_import,
        imports=imports,
        enums=enums,
        body=w.getvalue(),
    )


def runtime() -> dict[str, str]:
    """Return the Python runtime files as a dict of filename -> content."""
    result: dict[str, str] = {}
    for filename in RUNTIME_FILES:
        content = resources.files("pbforge.proto").joinpath(filename).read_text()
        result[filename] = content
    return result

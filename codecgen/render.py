from __future__ import annotations

import pathlib
import re
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from .config import DEFAULT_CONFIG, METADATA_KEY, Format, GeneratorConfig
from .convert import convert
from .fragments import render_lines
from .imports import DATACLASSES_NS, RUNTIME_NS, NamespaceAliasTable
from .model import WireRecord
from .required import DECODED, KWARGS, PRESENT, unmarshal_conversions
from .typesys import TYPING, type_string

TEMPLATES_DIR = pathlib.Path(__file__).resolve().parent / "templates"
CODEC_TEMPLATE = "codec.py.j2"


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(enabled_extensions=()),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def snake_case(name: str) -> str:
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    return name.lower()


def _format_context(wire: WireRecord, table: NamespaceAliasTable, fmt: Format) -> Dict[str, Any]:
    q = table.qualifier
    prefix = "_" + snake_case(wire.original_name)
    return {
        "key": fmt.key,
        "key_literal": repr(fmt.key),
        "label": fmt.label,
        "marshal_method": fmt.marshal_method,
        "unmarshal_method": fmt.unmarshal_method,
        "marshal_fn": f"{prefix}_{fmt.marshal_method}",
        "unmarshal_fn": f"{prefix}_{fmt.unmarshal_method}",
        "assignments": [(f.name, convert(f, "x").render(q)) for f in wire.fields],
        "decode_lines": render_lines(unmarshal_conversions(wire, fmt), q),
    }


def render_codec(
    wire: WireRecord, table: NamespaceAliasTable, config: GeneratorConfig = DEFAULT_CONFIG
) -> str:
    """Render the wire declaration plus the encode/decode functions of every format."""
    q = table.qualifier
    wire_fields: List[Dict[str, str]] = [
        {
            "name": f.name,
            "type": type_string(f.wire_type, q),
            "metadata": "{" + repr(METADATA_KEY) + ": " + repr(f.metadata) + "}",
        }
        for f in wire.fields
    ]
    template = _environment().get_template(CODEC_TEMPLATE)
    return template.render(
        imports=list(table.items()),
        home_module=wire.namespace.path,
        local_names=table.local_names,
        record=wire.original_name,
        wire_name=wire.name,
        wire_fields=wire_fields,
        formats=[_format_context(wire, table, fmt) for fmt in config.formats],
        typing=table.alias(TYPING),
        dataclasses=table.alias(DATACLASSES_NS),
        codec=table.alias(RUNTIME_NS),
        decoded=DECODED,
        present=PRESENT,
        kwargs=KWARGS,
    )

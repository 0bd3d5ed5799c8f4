from __future__ import annotations

import dataclasses
import hashlib
import logging
import re
from typing import List, Optional

from .config import DEFAULT_CONFIG, FORMAT_VERSION, GENERATOR_VERSION, GeneratorConfig
from .errors import GenerationError
from .imports import compute_imports
from .model import Diagnostic, RecordDescription, TypeDescriptionProvider, build_wire_record, load_overrides
from .render import render_codec

log = logging.getLogger(__name__)

DIGEST_PATTERN = re.compile(r"^# digest: ([0-9a-f]{64})$", re.MULTILINE)


@dataclasses.dataclass
class GenerationResult:
    code: Optional[str] = None
    error: Optional[GenerationError] = None
    warnings: List[Diagnostic] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def _lookup(provider: TypeDescriptionProvider, name: str, what: str) -> RecordDescription:
    try:
        return provider.lookup_record(name)
    except GenerationError as err:
        raise GenerationError(f"can't find {what}{name}: {err}", err.pos) from err


def make_marshaling_code(
    provider: TypeDescriptionProvider,
    typename: str,
    override_name: str = "",
    config: GeneratorConfig = DEFAULT_CONFIG,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> str:
    record = _lookup(provider, typename, "")
    wire = build_wire_record(record, config, diagnostics)
    if override_name:
        override = _lookup(provider, override_name, "field override record ")
        load_overrides(wire, override, provider)
    # Aliases must be settled before anything is printed.
    table = compute_imports(wire)
    log.debug("imports for %s: %s", wire.name, list(table.items()))
    return render_codec(wire, table, config)


def compute_digest(body: str) -> str:
    h = hashlib.sha256()
    h.update(GENERATOR_VERSION.encode("utf-8"))
    h.update(b"\x00")
    h.update(FORMAT_VERSION.encode("utf-8"))
    h.update(b"\x00")
    h.update(body.encode("utf-8"))
    return h.hexdigest()


def render_file(body: str, typename: str, source_label: str, config: GeneratorConfig = DEFAULT_CONFIG) -> str:
    meta = (
        f"# Code generated by {config.program_name}. DO NOT EDIT.\n"
        f"# source: {source_label}\n"
        f"# type: {typename}\n"
        f"# generator_version: {GENERATOR_VERSION}\n"
        f"# format_version: {FORMAT_VERSION}\n"
        f"# digest: {compute_digest(body)}\n\n"
    )
    return meta + body


def extract_existing_digest(text: str) -> str | None:
    m = DIGEST_PATTERN.search(text)
    if not m:
        return None
    return m.group(1)


def generate(
    provider: TypeDescriptionProvider,
    typename: str,
    override_name: str = "",
    source_label: str = ".",
    config: GeneratorConfig = DEFAULT_CONFIG,
) -> GenerationResult:
    """Run the whole pipeline; failures come back in the result instead of raising."""
    warnings: List[Diagnostic] = []
    try:
        body = make_marshaling_code(provider, typename, override_name, config, warnings)
    except GenerationError as err:
        return GenerationResult(error=err, warnings=warnings)
    return GenerationResult(code=render_file(body, typename, source_label, config), warnings=warnings)

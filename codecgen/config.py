from __future__ import annotations

import dataclasses
from typing import Tuple

GENERATOR_VERSION = "0.3.1"
FORMAT_VERSION = "1"
PROGRAM_NAME = "codecgen"

# dataclasses.field(metadata={METADATA_KEY: 'json:"name"'}) carries the tag string.
METADATA_KEY = "codec"

OPTIONAL_TAG = "optional"
OPTIONAL_VALUES = ("true", "yes")
OMIT_SENTINEL = "-"


@dataclasses.dataclass(frozen=True)
class Format:
    key: str  # tag key and method suffix, e.g. "json"
    label: str  # used in error messages, e.g. "JSON"

    @property
    def marshal_method(self) -> str:
        return f"marshal_{self.key}"

    @property
    def unmarshal_method(self) -> str:
        return f"unmarshal_{self.key}"


JSON = Format("json", "JSON")
YAML = Format("yaml", "YAML")


@dataclasses.dataclass(frozen=True)
class GeneratorConfig:
    """Knobs of a single generation run."""

    wire_suffix: str = "Wire"
    formats: Tuple[Format, ...] = (JSON, YAML)
    program_name: str = PROGRAM_NAME


DEFAULT_CONFIG = GeneratorConfig()

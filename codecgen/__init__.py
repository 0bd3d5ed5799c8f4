"""Generate JSON and YAML marshaling code for dataclass records."""

from .config import GENERATOR_VERSION as __version__
from .errors import DecodeError, GenerationError, MissingFieldError
from .generator import GenerationResult, generate, make_marshaling_code
from .loader import load_directory

__all__ = [
    "DecodeError",
    "GenerationError",
    "GenerationResult",
    "MissingFieldError",
    "__version__",
    "generate",
    "load_directory",
    "make_marshaling_code",
]

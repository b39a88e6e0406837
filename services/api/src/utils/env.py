"""
Declarative environment variables.

Each variable is described once by an ``EnvVarSpec``; ``validate`` checks a
list of them at startup and ``parse`` returns the typed value.
"""

import os
from typing import Any, Callable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError, create_model

from . import log

logger = log.get_logger(__name__)


class EnvVarSpec(BaseModel):
    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = lambda x: x
    is_optional: bool = False
    is_secret: bool = False
    type: Tuple[Any, Any] = (str, ...)


def _raw(spec: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(spec.id)
    if value is None or value == "":
        return spec.default
    return value


def parse(spec: EnvVarSpec) -> Any:
    raw = _raw(spec)
    if raw is None:
        return None
    return spec.parse(raw)


def validate(specs: List[EnvVarSpec]) -> bool:
    """Log every missing or malformed variable and return whether all are valid."""
    ok = True
    for spec in specs:
        raw = _raw(spec)
        if raw is None:
            if spec.is_optional:
                continue
            logger.error(f"Missing required environment variable {spec.id}")
            ok = False
            continue
        try:
            value = spec.parse(raw)
            create_model(spec.id, value=spec.type)(value=value)
        except (ValueError, TypeError, ValidationError) as e:
            if spec.is_secret:
                # Parser messages echo the raw value
                logger.error(f"Invalid value for {spec.id} (***): {type(e).__name__}")
            else:
                logger.error(f"Invalid value for {spec.id} ({raw}): {e}")
            ok = False
    return ok

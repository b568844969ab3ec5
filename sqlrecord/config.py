"""
Executor configuration.

Values can be passed explicitly or read from environment variables with
:meth:`ExecutorConfig.from_env` (``SQLRECORD_PARAMSTYLE``,
``SQLRECORD_STRICT_TEMPLATES``, ``SQLRECORD_LOG_STATEMENTS``,
``SQLRECORD_BACKSLASH_ESCAPES``).
"""

import os
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from sqlrecord.template import PARAMSTYLES

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip().lower() in _TRUE_VALUES


class ExecutorConfig(BaseModel):
    """
    Settings shared by every operation of one :class:`~sqlrecord.executor.Executor`.

    ``paramstyle`` of None means "use the paramstyle of the connection's
    DB-API module", falling back to ``format``. ``backslash_escapes`` of None
    turns backslash escapes in quoted literals on for MySQL drivers only.
    """

    model_config = ConfigDict(frozen=True)

    paramstyle: Optional[str] = None
    strict_templates: bool = False
    log_statements: bool = False
    backslash_escapes: Optional[bool] = None

    @field_validator("paramstyle")
    @classmethod
    def _known_paramstyle(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in PARAMSTYLES:
            raise ValueError(f"paramstyle must be one of {PARAMSTYLES}")
        return value

    @classmethod
    def from_env(cls, params: Dict = None) -> "ExecutorConfig":
        """Build a config from ``params``, falling back to ``SQLRECORD_*`` env vars."""
        params = params or {}
        values = {
            "paramstyle": params.get("paramstyle") or os.getenv("SQLRECORD_PARAMSTYLE") or None,
            "strict_templates": params.get("strict_templates"),
            "log_statements": params.get("log_statements"),
            "backslash_escapes": params.get("backslash_escapes"),
        }
        if values["strict_templates"] is None:
            values["strict_templates"] = _env_flag("SQLRECORD_STRICT_TEMPLATES")
        if values["log_statements"] is None:
            values["log_statements"] = _env_flag("SQLRECORD_LOG_STATEMENTS")
        if values["backslash_escapes"] is None:
            values["backslash_escapes"] = _env_flag("SQLRECORD_BACKSLASH_ESCAPES")
        return cls(**{key: value for key, value in values.items() if value is not None})

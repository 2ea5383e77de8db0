"""
Configuration management for MDB_MODEL.

Models themselves need no configuration; this module describes how an
application connects the model layer to MongoDB. Values come from explicit
arguments or from environment variables:

    MONGO_URI                          connection URI (required)
    DB_NAME                            database name (required)
    MONGO_SERVER_SELECTION_TIMEOUT_MS  server selection timeout (>= 1000)
    MONGO_MAX_POOL_SIZE                maximum connection pool size
    MONGO_MIN_POOL_SIZE                minimum connection pool size
    MDB_MODEL_SYNC_INDEXES             synchronize indexes in Model.open()
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import (
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    MIN_SERVER_SELECTION_TIMEOUT_MS,
)
from .exceptions import ConfigurationError

_ENV_VARS: Dict[str, str] = {
    "mongo_uri": "MONGO_URI",
    "db_name": "DB_NAME",
    "server_selection_timeout_ms": "MONGO_SERVER_SELECTION_TIMEOUT_MS",
    "max_pool_size": "MONGO_MAX_POOL_SIZE",
    "min_pool_size": "MONGO_MIN_POOL_SIZE",
    "sync_indexes_on_open": "MDB_MODEL_SYNC_INDEXES",
}


class ModelConfig(BaseModel):
    """
    Connection settings for the model layer.

    Usage:
        config = ModelConfig.from_env()
        db = await connect(config)
        users = await User.open(db, sync=config.sync_indexes_on_open)
    """

    mongo_uri: str = Field(..., min_length=1, description="MongoDB connection URI")
    db_name: str = Field(..., min_length=1, description="Database name")
    server_selection_timeout_ms: int = Field(
        DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
        ge=MIN_SERVER_SELECTION_TIMEOUT_MS,
        description="Server selection timeout in milliseconds",
    )
    max_pool_size: int = Field(
        DEFAULT_MAX_POOL_SIZE, ge=1, description="Maximum connection pool size"
    )
    min_pool_size: int = Field(
        DEFAULT_MIN_POOL_SIZE, ge=0, description="Minimum connection pool size"
    )
    sync_indexes_on_open: bool = Field(
        True, description="Synchronize declared indexes when a model is opened"
    )

    @model_validator(mode="after")
    def _check_pool_sizes(self) -> "ModelConfig":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})"
            )
        return self

    @classmethod
    def from_env(
        cls, environ: Optional[Dict[str, str]] = None, **overrides: Any
    ) -> "ModelConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            **overrides: Explicit values taking precedence over the environment

        Raises:
            ConfigurationError: If a required value is missing or a value is invalid
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for key, env_var in _ENV_VARS.items():
            raw = environ.get(env_var)
            if raw is not None and raw != "":
                values[key] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) or "root" for err in e.errors()})
            raise ConfigurationError(
                f"Invalid configuration: {e.errors()[0]['msg']}",
                context={
                    "fields": fields,
                    "env_vars": [_ENV_VARS[f] for f in fields if f in _ENV_VARS],
                },
            ) from e

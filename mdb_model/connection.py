"""
MongoDB connection helper.

Creates the motor client an application hands to its models and verifies the
server answers before returning the database handle. Models never open or
close connections themselves.

Usage:
    from mdb_model import ModelConfig, connect

    db = await connect(ModelConfig.from_env())
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConfigurationError as PyMongoConfigurationError
from pymongo.errors import PyMongoError

from .config import ModelConfig
from .exceptions import ConfigurationError, QueryExecutionError
from .observability import timed_operation

logger = logging.getLogger(__name__)


def create_client(config: ModelConfig) -> AsyncIOMotorClient:
    """
    Create a motor client from configuration without contacting the server.

    Raises:
        ConfigurationError: If the URI or client options are rejected
    """
    try:
        return AsyncIOMotorClient(
            config.mongo_uri,
            serverSelectionTimeoutMS=config.server_selection_timeout_ms,
            maxPoolSize=config.max_pool_size,
            minPoolSize=config.min_pool_size,
            appname="MDB_MODEL",
        )
    except (PyMongoConfigurationError, ValueError, TypeError) as e:
        logger.error(f"Failed to create MongoDB client: {e}")
        raise ConfigurationError(
            "Invalid MongoDB client configuration",
            context={"db_name": config.db_name},
        ) from e


@timed_operation("model.connect")
async def connect(
    config: Optional[ModelConfig] = None, client: Optional[AsyncIOMotorClient] = None
) -> AsyncIOMotorDatabase:
    """
    Connect to MongoDB and return the configured database.

    Args:
        config: Connection settings (read from the environment when omitted)
        client: Existing client to reuse instead of creating one

    Raises:
        ConfigurationError: If the configuration is invalid
        QueryExecutionError: If the server does not answer a ping
    """
    config = config or ModelConfig.from_env()
    client = client or create_client(config)

    try:
        await client.admin.command("ping")
    except PyMongoError as e:
        logger.exception(f"MongoDB ping failed for database '{config.db_name}'")
        raise QueryExecutionError(
            "MongoDB server is unreachable",
            operation="ping",
            context={"db_name": config.db_name},
        ) from e

    logger.info(
        f"Connected to MongoDB database '{config.db_name}' "
        f"(max_pool_size={config.max_pool_size}, min_pool_size={config.min_pool_size})"
    )
    return client[config.db_name]

"""Constants used in the project."""

import os
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    NOT_FOUND = 3
    INTERRUPTED = 130


class RepositoryKinds(Enum):
    """Repository kinds known to the default registry.

    Args:
        Enum (string): Repository kind identifiers.
    """

    LOCAL = "local"
    APPLICATION = "application"
    REMOTE = "remote"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    FILE_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "GAVFETCH_LOG_LEVEL"
    ENV_CONFIG = "GAVFETCH_CONFIG"
    DEFAULT_CONFIG_PATH = os.path.join("~", ".config", "gavfetch", "gavfetch.yml")

    CONNECT_TIMEOUT = 10  # seconds
    READ_TIMEOUT = 30  # seconds
    USER_AGENT = "gavfetch/1.0"
    CHUNK_SIZE = 1 << 16

    DEFAULT_EXTENSION = "jar"
    SNAPSHOT_SUFFIX = "-SNAPSHOT"
    SNAPSHOT_METADATA_FILE = "maven-metadata.xml"

    LOCAL_REPOSITORY_ID = "m2"
    LOCAL_REPOSITORY_NAME = "Local Repository"
    LOCAL_REPOSITORY_ROOT = os.path.join("~", ".m2", "repository")

    APP_REPOSITORY_ID = "repository"
    APP_REPOSITORY_NAME = "Application Repository"
    APP_REPOSITORY_ROOT = os.path.join("~", ".gavfetch", "repository")

    REMOTE_REPOSITORY_ID = "central"
    REMOTE_REPOSITORY_NAME = "Remote Repository"
    REMOTE_REPOSITORY_URL = "https://repo1.maven.org/maven2"

    TEMP_PREFIX = ".part-"
    TEMP_SUFFIX = ".tmp"

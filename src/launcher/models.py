"""
Data models for the Saturn executor launcher.
"""
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def default_lib_dir(dir_name: str = "lib") -> Optional[Path]:
    """
    Locate the library root next to the launcher's own install location.

    Args:
        dir_name: Name of the sibling directory

    Returns:
        Absolute path of the directory, or None if it does not exist
    """
    root = Path(__file__).resolve().parent.parent
    lib = root / dir_name
    if not lib.is_dir():
        return None
    return lib


class LifecyclePhase(str, Enum):
    """Lifecycle phase of a launcher."""
    UNSTARTED = "unstarted"
    PARSED = "parsed"
    ISOLATED = "isolated"
    RUNNING = "running"
    STOPPED = "stopped"


class LauncherConfig(BaseModel):
    """Validated launcher configuration, frozen once parsed."""
    model_config = ConfigDict(frozen=True)

    namespace: str = Field(description="Tenant namespace the executor registers under")
    executor_name: Optional[str] = Field(
        default=None,
        description="Executor name; the runtime may assign one when absent"
    )
    runtime_lib_dir: Optional[Path] = Field(
        default_factory=default_lib_dir,
        description="Root of the executor runtime's artefacts"
    )
    app_lib_dir: Optional[Path] = Field(
        default_factory=default_lib_dir,
        description="Root holding one directory per user application"
    )

    @field_validator('namespace')
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Namespace must be non-blank."""
        if not v or not v.strip():
            raise ValueError("namespace must not be blank")
        return v.strip()

    @field_validator('executor_name')
    @classmethod
    def validate_executor_name(cls, v: Optional[str]) -> Optional[str]:
        """Blank executor names are treated as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()


class ExecutorConfig(BaseModel):
    """Settings discovered by the executor runtime before it connects."""
    model_config = ConfigDict(extra="allow")

    connect_string: Optional[str] = Field(
        default=None,
        description="Coordination cluster connect string"
    )
    console_uris: List[str] = Field(
        default_factory=list,
        description="Console endpoints used for discovery"
    )
    properties: Dict[str, str] = Field(default_factory=dict)

    @field_validator('console_uris', mode='before')
    @classmethod
    def split_console_uris(cls, v):
        """Discovery reports endpoints as one comma-separated string."""
        if isinstance(v, str):
            return [uri.strip() for uri in v.split(',') if uri.strip()]
        return v

    @field_validator('properties', mode='before')
    @classmethod
    def split_properties(cls, v):
        """Accept "key=value" pairs separated by commas."""
        if not isinstance(v, str):
            return v
        properties = {}
        for pair in v.split(','):
            if not pair.strip():
                continue
            key, sep, value = pair.partition('=')
            if not sep or not key.strip():
                raise ValueError(f"Invalid property '{pair.strip()}' (expected key=value)")
            properties[key.strip()] = value.strip()
        return properties

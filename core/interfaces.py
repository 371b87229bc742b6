"""Core interfaces and data models for the universal adapter.

This module defines the canonical invocation context handed to the main
function, and the abstract collaborators (resolver, storage, adapter) that
provider implementations plug in.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.environment import Environment

RUNTIME_AWS = "aws-lambda"
RUNTIME_AZURE = "azure-functions"
RUNTIME_GOOGLE = "googlecloud-functions"
RUNTIME_OPENWHISK = "apache-openwhisk"
RUNTIME_DIRECT = "direct"


class Resolver(ABC):
    """Resolves the URL of a sibling function on the same provider."""

    @abstractmethod
    def create_url(self, package: str, name: str, version: str) -> str:
        """Create the absolute URL of the given function.

        Args:
            package: Package of the function
            name: Name of the function
            version: Version or alias of the function

        Returns:
            Absolute URL string
        """
        pass


class Storage:
    """Object storage collaborator.

    The base implementation does nothing so providers without object storage
    can share the interface.
    """

    async def presign_url(
        self,
        bucket: str,
        path: str,
        extra_params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        expires: int = 60,
    ) -> str:
        """Create a time-limited URL for direct client access.

        Args:
            bucket: Bucket name
            path: Object key, a leading slash is ignored
            extra_params: Additional signing parameters
            method: HTTP method the URL is valid for (GET or PUT)
            expires: Expiry in seconds

        Returns:
            The signed URL, or an empty string if unsupported
        """
        return ""


class PathInfo(BaseModel):
    """Path information relative to the function mount point."""

    suffix: str = Field(default="", description="Path beyond the mount point")

    @field_validator("suffix")
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        if v and not v.startswith("/"):
            return f"/{v}"
        return v


class RuntimeInfo(BaseModel):
    name: str = Field(..., description="Runtime identifier")
    region: Optional[str] = Field(None, description="Region the function runs in")
    account_id: Optional[str] = Field(None, description="Provider account id")


class FunctionInfo(BaseModel):
    """Identity of the invoked function."""

    name: Optional[str] = None
    package: Optional[str] = None
    version: Optional[str] = None
    fqn: Optional[str] = Field(None, description="Provider specific fully qualified name")
    app: Optional[str] = Field(None, description="Application or owner id")


class InvocationInfo(BaseModel):
    """Per-invocation metadata."""

    id: str = Field(..., description="Invocation id, echoed as x-invocation-id")
    deadline: Optional[int] = Field(None, description="Absolute deadline in epoch millis")
    transaction_id: Optional[str] = None
    request_id: Optional[str] = None
    event: Optional[Any] = Field(None, description="Raw or summarized triggering event")


class UniversalContext(BaseModel):
    """Invocation context passed by reference to the main function."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    resolver: Optional[Resolver] = None
    path_info: PathInfo = Field(default_factory=PathInfo)
    runtime: RuntimeInfo
    func: FunctionInfo
    invocation: InvocationInfo
    env: Environment = Field(default_factory=Environment)
    records: Optional[List[Any]] = None
    log: Optional[Any] = None
    storage: Storage = Field(default_factory=Storage)
    attributes: Dict[str, Any] = Field(default_factory=dict)


MainFunction = Callable[[httpx.Request, UniversalContext], Union[Any, Awaitable[Any]]]
MainFactory = Callable[[], MainFunction]
AdapterFunction = Callable[..., Awaitable[Any]]


class Adapter(Protocol):
    """The raw provider adapter seen by the plugin wrapper."""

    runtime_name: str

    async def __call__(self, event: Any, context: Any = None) -> Any:
        ...

    def is_trigger(self, event: Any) -> bool:
        """Whether the event is a non-HTTP invocation whose errors propagate."""
        ...

    def invocation_id(self, event: Any, context: Any = None) -> str:
        ...

    def error_response(
        self, status: int, message: str, invocation_id: str, expose_error: bool = True
    ) -> Any:
        """Build the provider's error envelope."""
        ...

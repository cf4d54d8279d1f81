from .assets import AssetReference, LocalAsset, RemoteAsset
from .auth import Credentials, EnvCredentials, TokenCredentials
from .config import PublishConfig
from .exceptions import (
    AuthError,
    ConcurrentModificationError,
    EncodingError,
    NotFoundError,
    PublishError,
    PublishInProgressError,
    TransportError,
    ValidationError,
)
from .github import GitHubRemote
from .loader import DocumentLoader
from .models import CommitRef, Frontmatter, LoadedDocument, PublishDocument, PublishMode, PublishProgress
from .publish import Publisher, retry_publish
from .remote import LocalRemote, RemoteRepository

__all__ = [
    "Publisher", "retry_publish", "DocumentLoader",
    "PublishDocument", "PublishMode", "PublishProgress", "Frontmatter", "CommitRef", "LoadedDocument",
    "AssetReference", "LocalAsset", "RemoteAsset",
    "RemoteRepository", "LocalRemote", "GitHubRemote",
    "Credentials", "TokenCredentials", "EnvCredentials",
    "PublishConfig",
    "PublishError", "ValidationError", "AuthError", "NotFoundError",
    "ConcurrentModificationError", "TransportError", "EncodingError", "PublishInProgressError",
]

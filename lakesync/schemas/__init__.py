from .files import (
    RenameRequest,
    MoveRequest,
    CopyRequest,
    RestoreVersionRequest,
    FileResponse,
    VersionResponse,
    VersionWriteResponse,
    VersionDiffResponse,
    VersionListResponse
)
from .folders import (
    FolderCreateRequest,
    FolderResponse,
    FolderListingResponse,
    EmptyTrashResponse
)
from .vault import (
    VaultEnvelopeRequest,
    VaultToggleRequest,
    VaultStatusResponse,
    VaultItemsResponse,
    VaultResetResponse
)
from .sync import (
    JournalEventResponse,
    JournalPullResponse
)
from .groups import (
    GroupCreateRequest,
    GroupMemberRequest,
    GroupFolderCreateRequest,
    GroupFolderAccessRequest,
    GroupResponse,
    GroupFolderResponse,
    GroupFolderAccessResponse
)

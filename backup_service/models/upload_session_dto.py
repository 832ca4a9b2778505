from dataclasses import dataclass, field

from .part_manifest import PartManifest  # pylint: disable=relative-beyond-top-level
from .transfer_state import TransferState  # pylint: disable=relative-beyond-top-level


@dataclass
class UploadSessionDto:
    bucket: str
    key: str
    upload_id: str = ""
    state: TransferState = TransferState.IDLE
    manifest: PartManifest = field(default_factory=PartManifest)
    bytes_uploaded: int = 0

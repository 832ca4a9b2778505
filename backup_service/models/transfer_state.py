from enum import Enum


class TransferState(Enum):
    IDLE = "idle"
    INITIATING = "initiating"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

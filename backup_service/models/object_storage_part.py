from typing import TypedDict


class ObjectStoragePart(TypedDict):
    PartNumber: int
    ETag: str

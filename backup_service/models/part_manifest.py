from dataclasses import dataclass, field
from typing import Iterator

from .object_storage_part import ObjectStoragePart  # pylint: disable=relative-beyond-top-level


@dataclass
class PartManifest:
    """Ordered list of parts acknowledged by the backend for one session.

    Part numbers start at 1 and grow by one with every append, so the
    manifest handed to completion never has gaps or duplicates.
    """

    parts: list[ObjectStoragePart] = field(default_factory=list)

    def append(self, part_number: int, etag: str) -> ObjectStoragePart:
        expected = len(self.parts) + 1
        if part_number != expected:
            raise ValueError(
                f"Part number {part_number} out of sequence, expected {expected}"
            )
        part = ObjectStoragePart(PartNumber=part_number, ETag=etag)
        self.parts.append(part)
        return part

    @property
    def next_part_number(self) -> int:
        return len(self.parts) + 1

    def to_request(self) -> dict[str, list[ObjectStoragePart]]:
        return {
            "Parts": [
                {"PartNumber": part["PartNumber"], "ETag": part["ETag"]}
                for part in self.parts
            ]
        }

    def __len__(self) -> int:
        return len(self.parts)

    def __iter__(self) -> Iterator[ObjectStoragePart]:
        return iter(self.parts)

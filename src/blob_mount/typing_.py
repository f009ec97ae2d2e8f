from typing import TypedDict, Dict


class BlobRef(TypedDict):
    hash: str
    size: int


class IndexPayload(TypedDict):
    blobs: Dict[str, int]

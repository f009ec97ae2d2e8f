from dataclasses import dataclass, field
from enum import Enum
from typing import List


class BlobType(str, Enum):
    DATA = "data"
    TREE = "tree"


@dataclass
class Node:
    """Metadata of one logical file whose bytes live in an ordered list of blobs."""

    name: str
    size: int
    mode: int
    content: List[str] = field(default_factory=list)
    inode: int = 0
    uid: int = 0
    gid: int = 0
    atime_ns: int = 0
    ctime_ns: int = 0
    mtime_ns: int = 0

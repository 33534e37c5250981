"""Object storage for transcription outputs."""

from pathlib import Path, PurePosixPath
from typing import Protocol


class ObjectStore(Protocol):
    """Protocol for object storage backends."""

    def put(
        self,
        container: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Write an object, replacing any existing one, and return its URI."""

    def get(self, container: str, key: str) -> bytes | None:
        """Read an object, or None if it does not exist."""


class InMemoryObjectStore:
    """Keep objects in local memory.

    Useful for tests and dry runs. Nothing survives a process restart.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str] = {}

    def put(
        self,
        container: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        self.objects[(container, key)] = data
        self.content_types[(container, key)] = content_type
        return f"memory://{container}/{key}"

    def get(self, container: str, key: str) -> bytes | None:
        return self.objects.get((container, key))


class LocalObjectStore:
    """Store objects as files under `root/<container>/<key>`."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, container: str, key: str) -> Path:
        return self.root / container / key

    def put(
        self,
        container: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        path = self._path(container, key)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            f.write(data)

        return path.resolve().as_uri()

    def get(self, container: str, key: str) -> bytes | None:
        path = self._path(container, key)
        if not path.exists():
            return None

        with open(path, "rb") as f:
            return f.read()


def create_store(connection_string: str) -> ObjectStore:
    """Build an object store from a connection string.

    Supported forms:
    - ``memory://`` for an in-memory store
    - ``file:///some/dir`` or a bare directory path for a local store

    Raises:
        ValueError: If the scheme is not supported
    """
    if connection_string.startswith("memory://"):
        return InMemoryObjectStore()
    if connection_string.startswith("file://"):
        return LocalObjectStore(Path(connection_string[len("file://"):]))
    if "://" in connection_string:
        raise ValueError(f"Unsupported storage backend: {connection_string}")
    return LocalObjectStore(Path(connection_string))


def result_object_keys(input_reference: str) -> tuple[str, str]:
    """Names of the raw JSON and plain-text outputs for an input object.

    Both are keyed by the base name of the input without its extension, so
    `/containers/audio/blobs/meeting.wav` becomes `meeting.json` and
    `meeting.txt`.
    """
    stem = PurePosixPath(input_reference.replace("\\", "/")).stem
    if not stem:
        raise ValueError(f"Cannot derive an output name from: {input_reference!r}")
    return f"{stem}.json", f"{stem}.txt"

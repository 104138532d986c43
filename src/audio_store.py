import re
import uuid
from pathlib import Path

PUBLIC_PREFIX = "/public/audio"
FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.(mp3|wav)$")


class AudioStore:
    """Generated reply audio, written to a public directory and served by name."""

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, data: bytes, extension: str) -> str:
        filename = f"{uuid.uuid4()}.{extension.lstrip('.')}"
        (self.directory / filename).write_bytes(data)
        return filename

    def url_for(self, filename: str) -> str:
        return f"{PUBLIC_PREFIX}/{filename}"

    def resolve(self, filename: str) -> Path:
        if not filename or not FILENAME_PATTERN.match(filename):
            raise ValueError(f"Invalid audio filename: {filename!r}")
        root = self.directory.resolve()
        candidate = (root / filename).resolve()
        if candidate.parent != root:
            raise ValueError("Path escapes the audio directory.")
        if not candidate.is_file():
            raise FileNotFoundError(filename)
        return candidate

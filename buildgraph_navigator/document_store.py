"""
Document Store - Read-only access to script text for the query engine

Every read is a suspension point so that dependency expansion can issue
sibling reads together. Open documents (unsaved editor buffers) shadow the
file on disk.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import ScriptReadError
from .utils import line_starts, normalize_path, offset_to_position, position_to_offset

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Document:
    """A script's identity and its current text"""
    file_id: str
    text: str

    @classmethod
    def create(cls, path: str, text: str) -> 'Document':
        return cls(file_id=normalize_path(path), text=text)

    def offset_at(self, line: int, character: int) -> int:
        return position_to_offset(self.text, line, character)

    @cached_property
    def line_starts(self) -> List[int]:
        return line_starts(self.text)

    def position_at(self, offset: int):
        return offset_to_position(self.text, offset, self.line_starts)

class CancellationToken:
    """Cooperative cancellation signal checked at every suspension point"""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

class ScriptReader(ABC):
    """Capability used by the core to reach script text"""

    @abstractmethod
    async def read_text(self, file_id: str) -> str:
        """Return the text of file_id or raise ScriptReadError"""

    @abstractmethod
    async def exists(self, file_id: str) -> bool:
        """True if file_id names an existing file"""

class FileSystemReader(ScriptReader):
    """Reads scripts from disk on a worker thread"""

    def __init__(self, encoding: str = 'utf-8'):
        self.encoding = encoding

    def _read(self, file_id: str) -> str:
        with open(file_id, 'r', encoding=self.encoding, errors='ignore') as f:
            return f.read()

    async def read_text(self, file_id: str) -> str:
        try:
            return await asyncio.to_thread(self._read, file_id)
        except OSError as e:
            raise ScriptReadError(file_id, e.strerror or str(e)) from e

    async def exists(self, file_id: str) -> bool:
        return await asyncio.to_thread(Path(file_id).is_file)

class DocumentStore(ScriptReader):
    """Open documents layered over a fallback reader"""

    def __init__(self, fallback: Optional[ScriptReader] = None):
        self.fallback = fallback or FileSystemReader()
        self._open_documents: Dict[str, str] = {}

    def open_document(self, path: str, text: str) -> Document:
        document = Document.create(path, text)
        self._open_documents[document.file_id] = text
        logger.debug(f"Opened document {document.file_id} ({len(text)} chars)")
        return document

    def close_document(self, path: str) -> bool:
        return self._open_documents.pop(normalize_path(path), None) is not None

    def get_document(self, path: str) -> Optional[Document]:
        file_id = normalize_path(path)
        if file_id in self._open_documents:
            return Document(file_id, self._open_documents[file_id])
        return None

    async def load(self, path: str) -> Document:
        """Open document if there is one, otherwise read from the fallback"""
        file_id = normalize_path(path)
        return Document(file_id, await self.read_text(file_id))

    async def read_text(self, file_id: str) -> str:
        if file_id in self._open_documents:
            return self._open_documents[file_id]
        return await self.fallback.read_text(file_id)

    async def exists(self, file_id: str) -> bool:
        if file_id in self._open_documents:
            return True
        return await self.fallback.exists(file_id)

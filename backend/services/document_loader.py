"""Document loading service for plain-text files."""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from models.document import Document, normalize_document_id
from models.tag_filter import TagFilter
from config import DOCUMENTS_DIR, DEFAULT_DOCUMENT_TAGS
from errors import ConfigurationError, NotFoundError

logger = logging.getLogger(__name__)

TAGS_MANIFEST = "tags.json"


class DocumentLoader:
    """Enumerates and reads the .txt documents of a directory."""

    def __init__(
        self,
        docs_directory: Union[str, Path] = DOCUMENTS_DIR,
        default_tags: Union[str, Dict[str, str], None] = DEFAULT_DOCUMENT_TAGS
    ):
        """
        Initialize DocumentLoader.

        Args:
            docs_directory: Path to directory containing .txt files
            default_tags: Tags applied to every document, as a dict or "key=value, ..." text
        """
        self.docs_directory = Path(docs_directory)
        if isinstance(default_tags, str):
            try:
                default_tags = TagFilter.parse(default_tags).as_dict()
            except ValueError as e:
                raise ConfigurationError(f"Invalid DEFAULT_DOCUMENT_TAGS: {e}") from e
        self.default_tags: Dict[str, str] = dict(default_tags or {})
        self._manifest: Optional[Dict[str, Dict[str, str]]] = None

    def list_documents(self) -> List[Path]:
        """
        List the top-level .txt files of the documents directory.

        Returns:
            Sorted list of file paths

        Raises:
            NotFoundError: If the directory does not exist
        """
        if not self.docs_directory.is_dir():
            logger.error(f"Documents directory not found: {self.docs_directory}")
            raise NotFoundError(f"Documents directory not found: {self.docs_directory}")

        paths = sorted(p for p in self.docs_directory.glob("*.txt") if p.is_file())
        logger.info(f"Found {len(paths)} text files in {self.docs_directory}")
        return paths

    def _load_manifest(self) -> Dict[str, Dict[str, str]]:
        """Read the optional tags.json manifest mapping file name to tags."""
        if self._manifest is not None:
            return self._manifest

        manifest_path = self.docs_directory / TAGS_MANIFEST
        manifest: Dict[str, Dict[str, str]] = {}
        if manifest_path.is_file():
            try:
                raw = json.loads(manifest_path.read_text(encoding="utf-8"))
            except ValueError as e:
                raise ConfigurationError(f"Invalid tags manifest {manifest_path}: {e}") from e
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Tags manifest {manifest_path} must map file names to tag objects")
            for filename, tags in raw.items():
                if not isinstance(tags, dict):
                    raise ConfigurationError(f"Tags for '{filename}' in {manifest_path} must be an object")
                manifest[filename] = {str(k): str(v) for k, v in tags.items()}
            logger.info(f"Loaded tags for {len(manifest)} documents from {manifest_path}")

        self._manifest = manifest
        return manifest

    def tags_for(self, filename: str) -> Dict[str, str]:
        tags = dict(self.default_tags)
        tags.update(self._load_manifest().get(filename, {}))
        return tags

    def load_document(self, path: Union[str, Path]) -> Document:
        """
        Read a single text file.

        Args:
            path: Path of the .txt file

        Returns:
            Document with normalized id, text and tags

        Raises:
            NotFoundError: If the file does not exist
            UnicodeDecodeError: If the file is not valid UTF-8
        """
        path = Path(path)
        if not path.is_file():
            raise NotFoundError(f"File not found: {path}")

        text = path.read_text(encoding="utf-8")
        document = Document(
            document_id=normalize_document_id(path.name),
            source_name=path.name,
            source_path=str(path),
            text=text,
            tags=self.tags_for(path.name)
        )
        logger.debug(f"Loaded {path.name}: {len(text)} characters, tags={document.tags}")
        return document

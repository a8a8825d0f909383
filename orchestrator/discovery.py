"""Find the producer, broker and consumer files of a module."""

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from contracts import ContractRole, DiscoveryError
from config import ROLE_FILE_PATTERNS, SOURCE_EXTENSIONS, Settings, settings as default_settings


logger = logging.getLogger(__name__)

_TEST_MARKERS = (".test.", ".spec.", ".stories.", ".d.ts")


@dataclass
class DiscoveredFiles:
    """Role-tagged source files of one module."""
    root: Path
    producers: List[Path] = field(default_factory=list)
    brokers: List[Path] = field(default_factory=list)
    consumers: List[Path] = field(default_factory=list)

    def by_role(self) -> Dict[ContractRole, List[Path]]:
        return {
            ContractRole.PRODUCER: self.producers,
            ContractRole.BROKER: self.brokers,
            ContractRole.CONSUMER: self.consumers,
        }

    @property
    def all_files(self) -> List[Path]:
        """Every discovered file once, sorted."""
        return sorted(set(self.producers) | set(self.brokers) | set(self.consumers))


class ModuleDiscovery:
    """Walks a module root and tags files by role using filename patterns."""

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings

    def discover(self, module_path: str, broker_path: Optional[str] = None) -> DiscoveredFiles:
        """Discover the role files of a module.

        Args:
            module_path: Module root directory
            broker_path: Explicit broker file, overriding filename search

        Returns:
            DiscoveredFiles with sorted paths per role

        Raises:
            DiscoveryError: If the root or the explicit broker file is missing or unreadable
        """
        root = Path(module_path)
        if not root.exists():
            raise DiscoveryError(f"Module root does not exist: {module_path}", file_path=str(module_path))
        if not root.is_dir():
            raise DiscoveryError(f"Module root is not a directory: {module_path}", file_path=str(module_path))

        discovered = DiscoveredFiles(root=root)
        excluded = set(self.settings.excluded_dirs)

        try:
            candidates = sorted(root.rglob("*"))
        except OSError as e:
            raise DiscoveryError(f"Cannot read module root {module_path}: {e}", file_path=str(module_path)) from e

        for path in candidates:
            relative_parts = path.relative_to(root).parts
            if any(part in excluded for part in relative_parts[:-1]):
                continue
            if not path.is_file() or path.suffix not in SOURCE_EXTENSIONS:
                continue
            if any(marker in path.name for marker in _TEST_MARKERS):
                continue

            for role, patterns in ROLE_FILE_PATTERNS.items():
                if any(fnmatch.fnmatchcase(path.name, pattern) for pattern in patterns):
                    discovered.by_role()[ContractRole(role)].append(path)

        explicit = broker_path or self.settings.broker_path
        if explicit:
            discovered.brokers = [self._resolve_broker(root, explicit)]

        logger.info(
            "Discovered %d producer, %d broker and %d consumer file(s) under %s",
            len(discovered.producers), len(discovered.brokers), len(discovered.consumers), root,
        )
        return discovered

    def _resolve_broker(self, root: Path, broker_path: str) -> Path:
        path = Path(broker_path)
        if not path.is_absolute() and not path.exists() and (root / path).exists():
            path = root / path
        if not path.is_file():
            raise DiscoveryError(f"Broker file not found: {broker_path}", file_path=str(broker_path))
        return path

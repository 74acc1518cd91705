from dataclasses import dataclass
from pathlib import Path


@dataclass
class CodepalPaths:
    """Centralizes filesystem paths for a Codepal workspace."""

    root: Path

    @property
    def codepal_dir(self) -> Path:
        return self.root / ".codepal"

    @property
    def config_file(self) -> Path:
        return self.codepal_dir / "codepal.json"

    @property
    def logs_dir(self) -> Path:
        return self.codepal_dir / "logs"

    @property
    def global_dir(self) -> Path:
        return Path.home() / ".codepal"

    @property
    def global_config_file(self) -> Path:
        return self.global_dir / "codepal.json"

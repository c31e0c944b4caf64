# pathprobe/context.py
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from pathprobe.config import Settings
from pathprobe.schemas import OutputFormat


@dataclass(frozen=True)
class RunContext:
    """Everything one invocation writes under: output dir, timestamp prefix, format."""
    results_dir: Path
    stamp: str
    output_format: OutputFormat = "text"

    @classmethod
    def create(cls, settings: Settings, now=None) -> "RunContext":
        now = now or datetime.now()
        return cls(Path(settings.results_dir), now.strftime("%Y%m%d_%H%M%S"), settings.output_format)

    def path_for(self, scenario: str, role: str = "") -> Path:
        name = f"{self.stamp}_{scenario}"
        if role and role != "main":
            name += "_" + re.sub(r"[^A-Za-z0-9]+", "_", role).strip("_").lower()
        return self.results_dir / f"{name}.{self.output_format}"

"""Configuration management for the segmentation engine."""
import tomllib
from pathlib import Path
from dataclasses import dataclass, field

# Default paths
ROOT = Path(__file__).resolve().parents[2]
CONFIG_PATH = ROOT / "config.toml"

@dataclass
class AllocationConfig:
    typo_grace_days: int = 30

@dataclass
class SegmentConfig:
    icp_high_threshold: float = 80.0
    share_a_above: float = 15.0
    share_b_min: float = 5.0

@dataclass
class RiskConfig:
    window_days: int = 180
    include_past_due: bool = False

@dataclass
class NeglectConfig:
    priority_days: int = 30
    default_days: int = 90
    priority_segments: list[str] = field(default_factory=lambda: ["A", "B"])

@dataclass
class RunConfig:
    sample_limit: int = 5

@dataclass
class AppConfig:
    allocation: AllocationConfig = field(default_factory=AllocationConfig)
    segments: SegmentConfig = field(default_factory=SegmentConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    neglect: NeglectConfig = field(default_factory=NeglectConfig)
    run: RunConfig = field(default_factory=RunConfig)

def load_config(path: Path = CONFIG_PATH) -> AppConfig:
    """Loads configuration from a TOML file."""
    path = Path(path)
    if not path.exists():
        return AppConfig()

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)

        return AppConfig(
            allocation=AllocationConfig(**data.get("allocation", {})),
            segments=SegmentConfig(**data.get("segments", {})),
            risk=RiskConfig(**data.get("risk", {})),
            neglect=NeglectConfig(**data.get("neglect", {})),
            run=RunConfig(**data.get("run", {})),
        )
    except Exception as e:
        print(f"[WARN] Failed to load config from {path}: {e}. Using defaults.")
        return AppConfig()

# Global instance
config = load_config()

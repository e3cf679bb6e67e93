"""
Configuration management for the burn engine.
"""
import json
import os
from dataclasses import dataclass, asdict

from .constants import (
    DEFAULT_ADMIN_OPERATION_COOLDOWN, DEFAULT_FEE_SPLIT_BPS, DEFAULT_PROGRAM_ID,
    INITIAL_SLIPPAGE_BPS, MAX_FEES_PER_CYCLE, MIN_CYCLE_INTERVAL,
    MIN_FEES_TO_CLAIM,
)


@dataclass
class ProgramConfig:
    """Program identity used for address derivation."""
    program_id: str = DEFAULT_PROGRAM_ID.hex()
    testing_mode: bool = False  # skips interval and threshold gates

    @property
    def program_id_bytes(self) -> bytes:
        return bytes.fromhex(self.program_id)


@dataclass
class TreasuryConfig:
    """Initial treasury parameters, applied once at initialization."""
    asdf_mint: str = ""
    wsol_mint: str = "069b8857feab8184fb687f634618c035dac439dc1aeb3b5598a0f00000000001"
    pool_address: str = ""
    min_fees_threshold: int = MIN_FEES_TO_CLAIM
    max_fees_per_cycle: int = MAX_FEES_PER_CYCLE
    slippage_bps: int = INITIAL_SLIPPAGE_BPS
    min_cycle_interval: int = MIN_CYCLE_INTERVAL
    fee_split_bps: int = DEFAULT_FEE_SPLIT_BPS
    admin_operation_cooldown: int = DEFAULT_ADMIN_OPERATION_COOLDOWN


@dataclass
class ValidatorConfig:
    """Validator protocol policy."""
    sync_requires_admin: bool = True


@dataclass
class DatabaseConfig:
    """Database configuration."""
    path: str = "./burn_engine_data"
    write_buffer_size: int = 4 * 1024 * 1024  # 4MB
    max_open_files: int = 1000
    compression: str = "snappy"


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9109


@dataclass
class Config:
    """Main configuration."""
    program: ProgramConfig
    treasury: TreasuryConfig
    validator: ValidatorConfig
    database: DatabaseConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        return cls(
            program=ProgramConfig(),
            treasury=TreasuryConfig(),
            validator=ValidatorConfig(),
            database=DatabaseConfig(),
            monitoring=MonitoringConfig(),
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file; missing sections use defaults."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        return cls(
            program=ProgramConfig(**data.get('program', {})),
            treasury=TreasuryConfig(**data.get('treasury', {})),
            validator=ValidatorConfig(**data.get('validator', {})),
            database=DatabaseConfig(**data.get('database', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {})),
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        return {
            'program': asdict(self.program),
            'treasury': asdict(self.treasury),
            'validator': asdict(self.validator),
            'database': asdict(self.database),
            'monitoring': asdict(self.monitoring),
        }

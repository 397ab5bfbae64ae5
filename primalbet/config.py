"""
Configuration management for the economy backend.
"""
import json
import os
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Optional

from .crypto import Keypair
from .errors import ConfigurationError

LAMPORTS_PER_SOL = 1_000_000_000


@dataclass
class RpcConfig:
    """Chain RPC configuration."""
    url: str = "https://api.devnet.solana.com"
    commitment: str = "confirmed"
    timeout: float = 30.0
    confirm_timeout: float = 60.0
    poll_interval: float = 0.5


@dataclass
class ProgramConfig:
    """Ledger program identifiers and economics."""
    program_id: str = ""
    treasury: str = ""
    namespace: str = "global"
    entry_fee: int = LAMPORTS_PER_SOL // 100  # 0.01 native
    min_backend_balance: int = LAMPORTS_PER_SOL // 100


@dataclass
class SignerConfig:
    """Backend signer key material: a JSON array of 64 byte values, or a file holding one."""
    secret_key: str = ""
    keypair_path: str = ""

    def load(self) -> Keypair:
        if self.secret_key:
            return Keypair.from_json(self.secret_key)
        if self.keypair_path:
            path = Path(self.keypair_path)
            if not path.exists():
                raise ConfigurationError(f"Keypair file not found: {path}")
            return Keypair.from_json(path.read_text())
        raise ConfigurationError("No backend signer configured")


@dataclass
class OracleConfig:
    """Fairness oracle configuration."""
    base_url: str = "https://proofnetwork.lol/api/blockchain/contracts"
    contract_address: str = "0x7CoBpP-YQJBYKf8M"
    caller: str = ""
    timeout: float = 10.0


@dataclass
class ServerConfig:
    """Read API configuration."""
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: list = field(default_factory=lambda: ["http://localhost:3000"])


@dataclass
class RelayConfig:
    """Event relay configuration."""
    poll_interval: float = 2.0
    claim_refresh_delay: float = 1.0  # let the claim settle before re-reading the pot
    max_seen: int = 10000


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    host: str = "127.0.0.1"
    port: int = 9090
    balance_check_interval: float = 60.0


@dataclass
class Config:
    """Main configuration."""
    rpc: RpcConfig
    program: ProgramConfig
    signer: SignerConfig
    oracle: OracleConfig
    server: ServerConfig
    relay: RelayConfig
    monitoring: MonitoringConfig

    SECTIONS = ('rpc', 'program', 'signer', 'oracle', 'server', 'relay', 'monitoring')

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            rpc=RpcConfig(),
            program=ProgramConfig(),
            signer=SignerConfig(),
            oracle=OracleConfig(),
            server=ServerConfig(),
            relay=RelayConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        try:
            return cls(
                rpc=RpcConfig(**data.get('rpc', {})),
                program=ProgramConfig(**data.get('program', {})),
                signer=SignerConfig(**data.get('signer', {})),
                oracle=OracleConfig(**data.get('oracle', {})),
                server=ServerConfig(**data.get('server', {})),
                relay=RelayConfig(**data.get('relay', {})),
                monitoring=MonitoringConfig(**data.get('monitoring', {}))
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}") from e

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, base: Optional['Config'] = None, environ=None) -> 'Config':
        """Overlay the deployment environment variables onto a configuration."""
        env = os.environ if environ is None else environ
        config = base or cls.default()

        if env.get('SOLANA_RPC_URL'):
            config.rpc.url = env['SOLANA_RPC_URL']
        if env.get('PROGRAM_ID'):
            config.program.program_id = env['PROGRAM_ID']
        if env.get('TREASURY_WALLET'):
            config.program.treasury = env['TREASURY_WALLET']
        if env.get('BACKEND_WALLET_PRIVATE_KEY'):
            config.signer.secret_key = env['BACKEND_WALLET_PRIVATE_KEY']
        if env.get('BACKEND_WALLET_ADDRESS'):
            config.oracle.caller = env['BACKEND_WALLET_ADDRESS']
        if env.get('ORACLE_BASE_URL'):
            config.oracle.base_url = env['ORACLE_BASE_URL']
        if env.get('ORACLE_CONTRACT_ADDRESS'):
            config.oracle.contract_address = env['ORACLE_CONTRACT_ADDRESS']
        if env.get('FRONTEND_URL'):
            config.server.cors_origins = [env['FRONTEND_URL']]
        if env.get('PORT'):
            try:
                config.server.port = int(env['PORT'])
            except ValueError as e:
                raise ConfigurationError(f"PORT must be an integer: {env['PORT']!r}") from e
        return config

    def validate(self):
        """Fatal checks run once at startup."""
        if not self.program.program_id:
            raise ConfigurationError("PROGRAM_ID is required")
        if not self.program.treasury:
            raise ConfigurationError("TREASURY_WALLET is required")
        if self.program.entry_fee <= 0:
            raise ConfigurationError("entry_fee must be positive")

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {name: asdict(getattr(self, name)) for name in self.SECTIONS}

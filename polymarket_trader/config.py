"""
Configuration for the Polymarket trading pipeline.

Settings come from environment variables, optionally loaded from a .env
file. Nothing here touches the network: building a Settings object is the
"configure" half of the two-phase startup; TradingClient.connect() is the
other half.

SECURITY WARNING:
- Never commit your private key to git
- Use environment variables or a .env file
- Add .env to .gitignore
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv, dotenv_values
from eth_account import Account

# === Defaults ===
CLOB_HOST = "https://clob.polymarket.com"
GAMMA_API_URL = "https://gamma-api.polymarket.com"
DATA_API_URL = "https://data-api.polymarket.com"
DEFAULT_RPC_URL = "https://polygon-rpc.com"
DEFAULT_CHAIN_ID = 137  # Polygon Mainnet
DEFAULT_MIN_PRIORITY_FEE_GWEI = 30
DEFAULT_APPROVAL_GAS_LIMIT = 200_000
REQUEST_TIMEOUT = 30  # seconds


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass
class Settings:
    """
    Pipeline settings.

    Authentication:
    - private_key: signing key; absent means read-only mode
    - funder_address: proxy wallet holding the funds, if any
    - signature_type: 0 = EOA, 1 = Magic/email proxy, 2 = browser wallet proxy

    Network:
    - rpc_url / chain_id: Polygon node
    - clob_host / gamma_url / data_url: exchange, market-data and positions APIs

    Fees:
    - min_priority_fee_gwei: floor for the EIP-1559 tip
    - approval_gas_limit: gas limit for approve/setApprovalForAll
    """

    # ========================================
    # AUTHENTICATION
    # ========================================
    private_key: Optional[str] = field(default_factory=lambda: _optional("PRIVATE_KEY"))
    funder_address: Optional[str] = field(default_factory=lambda: _optional("FUNDER_ADDRESS"))
    signature_type: Optional[int] = field(
        default_factory=lambda: int(os.getenv("SIGNATURE_TYPE")) if _optional("SIGNATURE_TYPE") else None
    )

    # ========================================
    # NETWORK
    # ========================================
    chain_id: int = field(default_factory=lambda: int(os.getenv("CHAIN_ID", str(DEFAULT_CHAIN_ID))))
    rpc_url: str = field(default_factory=lambda: os.getenv("POLYGON_RPC_URL", DEFAULT_RPC_URL))
    clob_host: str = field(default_factory=lambda: os.getenv("CLOB_HOST", CLOB_HOST))
    gamma_url: str = field(default_factory=lambda: os.getenv("GAMMA_API_URL", GAMMA_API_URL))
    data_url: str = field(default_factory=lambda: os.getenv("DATA_API_URL", DATA_API_URL))
    request_timeout: float = field(default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", str(REQUEST_TIMEOUT))))

    # ========================================
    # FEES / GAS
    # ========================================
    min_priority_fee_gwei: float = field(
        default_factory=lambda: float(os.getenv("MIN_PRIORITY_FEE_GWEI", str(DEFAULT_MIN_PRIORITY_FEE_GWEI)))
    )
    approval_gas_limit: int = field(
        default_factory=lambda: int(os.getenv("APPROVAL_GAS_LIMIT", str(DEFAULT_APPROVAL_GAS_LIMIT)))
    )

    @classmethod
    def load(cls, env_file: Optional[str] = None) -> "Settings":
        """
        Load settings from the environment.

        Args:
            env_file: Optional .env file. Its values do not override
                variables already present in the environment.
        """
        if env_file:
            load_dotenv(Path(env_file), override=False)
        else:
            load_dotenv(override=False)
        return cls()

    @classmethod
    def from_file(cls, env_file: str) -> "Settings":
        """Load settings from a specific env file only, ignoring os.environ."""
        values = {k: v for k, v in dotenv_values(env_file).items() if v}
        return cls(
            private_key=values.get("PRIVATE_KEY"),
            funder_address=values.get("FUNDER_ADDRESS"),
            signature_type=int(values["SIGNATURE_TYPE"]) if "SIGNATURE_TYPE" in values else None,
            chain_id=int(values.get("CHAIN_ID", DEFAULT_CHAIN_ID)),
            rpc_url=values.get("POLYGON_RPC_URL", DEFAULT_RPC_URL),
            clob_host=values.get("CLOB_HOST", CLOB_HOST),
            gamma_url=values.get("GAMMA_API_URL", GAMMA_API_URL),
            data_url=values.get("DATA_API_URL", DATA_API_URL),
            min_priority_fee_gwei=float(values.get("MIN_PRIORITY_FEE_GWEI", DEFAULT_MIN_PRIORITY_FEE_GWEI)),
            approval_gas_limit=int(values.get("APPROVAL_GAS_LIMIT", DEFAULT_APPROVAL_GAS_LIMIT)),
        )

    @property
    def can_sign(self) -> bool:
        return bool(self.private_key)

    @property
    def effective_signature_type(self) -> int:
        """
        Signature type to hand to the exchange client.

        Explicit setting wins. Otherwise a funder address implies a browser
        wallet proxy (2), and no funder means a plain EOA (0).
        """
        if self.signature_type is not None:
            return self.signature_type
        return 2 if self.funder_address else 0

    @property
    def signer_address(self) -> Optional[str]:
        if not self.private_key:
            return None
        return Account.from_key(self.private_key).address

    @property
    def owner_address(self) -> Optional[str]:
        """Address whose allowances matter: the funder if set, else the signer."""
        return self.funder_address or self.signer_address

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate settings.

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []

        if self.private_key:
            try:
                Account.from_key(self.private_key)
            except (ValueError, TypeError) as e:
                errors.append(f"PRIVATE_KEY is not a valid key: {e}")

        if self.funder_address and not self.funder_address.startswith("0x"):
            errors.append("FUNDER_ADDRESS must be a 0x-prefixed address")

        if self.effective_signature_type not in (0, 1, 2):
            errors.append("SIGNATURE_TYPE must be 0, 1 or 2")

        if self.effective_signature_type in (1, 2) and not self.funder_address:
            errors.append(
                f"FUNDER_ADDRESS is required for signature_type={self.effective_signature_type}. "
                "Get it from https://polymarket.com/@YOUR_USERNAME"
            )

        if self.min_priority_fee_gwei <= 0:
            errors.append("MIN_PRIORITY_FEE_GWEI must be > 0")

        if self.approval_gas_limit <= 0:
            errors.append("APPROVAL_GAS_LIMIT must be > 0")

        return len(errors) == 0, errors

    def summary(self) -> dict:
        """Configuration summary safe to print (no secrets)."""
        try:
            signer = self.signer_address
        except (ValueError, TypeError):
            signer = "invalid private key"

        return {
            "private_key": "set" if self.private_key else "missing (read-only mode)",
            "signer_address": signer,
            "funder_address": self.funder_address,
            "signature_type": self.effective_signature_type,
            "chain_id": self.chain_id,
            "rpc_url": self.rpc_url,
            "clob_host": self.clob_host,
            "gamma_url": self.gamma_url,
            "data_url": self.data_url,
            "min_priority_fee_gwei": self.min_priority_fee_gwei,
        }


# === Environment Template ===
ENV_TEMPLATE = """
# Polymarket Trading Configuration
# Copy this to .env and fill in your values

# Your wallet's private key (omit for read-only mode)
# WARNING: Never share or commit this!
PRIVATE_KEY=

# Funder address (optional, the proxy wallet holding your funds)
FUNDER_ADDRESS=

# Signature type (optional)
# 0 = EOA (MetaMask, hardware wallet)
# 1 = Email/Magic wallet
# 2 = Browser wallet proxy (default when FUNDER_ADDRESS is set)
SIGNATURE_TYPE=

# Polygon RPC URL (optional, has default)
POLYGON_RPC_URL=https://polygon-rpc.com

# Chain ID (optional, defaults to 137 for Polygon)
CHAIN_ID=137

# API hosts (optional, have defaults)
CLOB_HOST=https://clob.polymarket.com
GAMMA_API_URL=https://gamma-api.polymarket.com
DATA_API_URL=https://data-api.polymarket.com

# Minimum priority fee for approval transactions, in gwei
MIN_PRIORITY_FEE_GWEI=30
"""


def create_env_template(path: str = ".env.template") -> Path:
    """Write a template .env file and return its path."""
    target = Path(path)
    target.write_text(ENV_TEMPLATE.strip() + "\n")
    return target

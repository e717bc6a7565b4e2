"""
Polygon contract addresses, ABIs and the allowance requirement table.

Before trading on Polymarket, the owner wallet must approve token spending
for the exchange contracts:
- USDC (ERC-20): lets CTF, the Exchange and the NegRisk pair move collateral
- Conditional Tokens (ERC-1155): lets the Exchange and the NegRisk pair move
  position tokens

The CTF and NegRisk Adapter ABIs also carry the payout and redeemPositions
entries used to claim resolved positions.

The requirement table is data. Adding a permission means adding a row here.
"""

from .models import (
    AllowanceKind,
    AllowanceRequirement,
    MarketKind,
    Side,
    ALL_SIDES,
    ALL_MARKET_KINDS,
)

# === Token Contracts (Polygon) ===
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"

# === Exchange Contracts (need allowance) ===
EXCHANGE_ADDRESS = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
NEG_RISK_EXCHANGE_ADDRESS = "0xC5d563A36AE78145C45a50134d48A1215220f80a"
NEG_RISK_ADAPTER_ADDRESS = "0xd91E80cF2E7be2e162c6513ceD06f1dD0dA35296"

CONTRACT_NAMES = {
    USDC_ADDRESS.lower(): "USDC",
    CTF_ADDRESS.lower(): "CTF",
    EXCHANGE_ADDRESS.lower(): "Exchange",
    NEG_RISK_EXCHANGE_ADDRESS.lower(): "NegRiskExchange",
    NEG_RISK_ADAPTER_ADDRESS.lower(): "NegRiskAdapter",
}

# Maximum uint256 for unlimited approval
MAX_UINT256 = 2**256 - 1

# USDC has 6 decimals
USDC_DECIMALS = 6


def _function(name, inputs, outputs=(), view=False):
    """One ABI function entry from (name, type) input pairs and output types."""
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": arg, "type": kind} for arg, kind in inputs],
        "outputs": [{"name": "", "type": kind} for kind in outputs],
        "stateMutability": "view" if view else "nonpayable",
    }


# USDC: grants and balance
ERC20_ABI = [
    _function("approve", [("spender", "address"), ("amount", "uint256")], ["bool"]),
    _function("allowance", [("owner", "address"), ("spender", "address")], ["uint256"], view=True),
    _function("balanceOf", [("account", "address")], ["uint256"], view=True),
]

# Conditional Tokens: operator approvals, position balances, payouts, redemption
CTF_ABI = [
    _function("setApprovalForAll", [("operator", "address"), ("approved", "bool")]),
    _function("isApprovedForAll", [("owner", "address"), ("operator", "address")], ["bool"], view=True),
    _function("balanceOf", [("account", "address"), ("id", "uint256")], ["uint256"], view=True),
    _function("payoutDenominator", [("conditionId", "bytes32")], ["uint256"], view=True),
    _function("payoutNumerators", [("conditionId", "bytes32"), ("index", "uint256")], ["uint256"], view=True),
    _function(
        "redeemPositions",
        [
            ("collateralToken", "address"),
            ("parentCollectionId", "bytes32"),
            ("conditionId", "bytes32"),
            ("indexSets", "uint256[]"),
        ],
    ),
]

# NegRisk Adapter: redemption of negative-risk positions by amount per outcome
NEG_RISK_ADAPTER_ABI = [
    _function("redeemPositions", [("conditionId", "bytes32"), ("amounts", "uint256[]")]),
]

# Polymarket positions always hang off the root collection
PARENT_COLLECTION_ID = bytes(32)

ABI_BY_KIND = {
    AllowanceKind.ERC20_ALLOWANCE: ERC20_ABI,
    AllowanceKind.OPERATOR_APPROVAL: CTF_ABI,
}

BUY_ONLY = frozenset({Side.BUY})
SELL_ONLY = frozenset({Side.SELL})
STANDARD_ONLY = frozenset({MarketKind.STANDARD})
NEG_RISK_ONLY = frozenset({MarketKind.NEG_RISK})

REQUIREMENTS_VERSION = "polygon-2024.1"

ALLOWANCE_REQUIREMENTS = (
    AllowanceRequirement(
        key="USDC_ALLOWANCE_FOR_CTF",
        label="USDC→CTF",
        token=USDC_ADDRESS,
        spender=CTF_ADDRESS,
        kind=AllowanceKind.ERC20_ALLOWANCE,
        purpose="lets the Conditional Tokens Framework take USDC to mint and merge positions",
        sides=ALL_SIDES,
        market_kinds=ALL_MARKET_KINDS,
    ),
    AllowanceRequirement(
        key="USDC_ALLOWANCE_FOR_EXCHANGE",
        label="USDC→Exchange",
        token=USDC_ADDRESS,
        spender=EXCHANGE_ADDRESS,
        kind=AllowanceKind.ERC20_ALLOWANCE,
        purpose="lets the CTF Exchange take USDC when your buy orders fill",
        sides=BUY_ONLY,
        market_kinds=STANDARD_ONLY,
    ),
    AllowanceRequirement(
        key="CTF_APPROVAL_FOR_EXCHANGE",
        label="CTF→Exchange",
        token=CTF_ADDRESS,
        spender=EXCHANGE_ADDRESS,
        kind=AllowanceKind.OPERATOR_APPROVAL,
        purpose="lets the CTF Exchange move your outcome tokens when your sell orders fill",
        sides=SELL_ONLY,
        market_kinds=STANDARD_ONLY,
    ),
    AllowanceRequirement(
        key="USDC_ALLOWANCE_FOR_NEG_RISK_EXCHANGE",
        label="USDC→NegRiskExchange",
        token=USDC_ADDRESS,
        spender=NEG_RISK_EXCHANGE_ADDRESS,
        kind=AllowanceKind.ERC20_ALLOWANCE,
        purpose="lets the NegRisk Exchange take USDC when buy orders fill on negative-risk markets",
        sides=BUY_ONLY,
        market_kinds=NEG_RISK_ONLY,
    ),
    AllowanceRequirement(
        key="USDC_ALLOWANCE_FOR_NEG_RISK_ADAPTER",
        label="USDC→NegRiskAdapter",
        token=USDC_ADDRESS,
        spender=NEG_RISK_ADAPTER_ADDRESS,
        kind=AllowanceKind.ERC20_ALLOWANCE,
        purpose="lets the NegRisk Adapter take USDC to split and convert negative-risk positions",
        sides=BUY_ONLY,
        market_kinds=NEG_RISK_ONLY,
    ),
    AllowanceRequirement(
        key="CTF_APPROVAL_FOR_NEG_RISK_EXCHANGE",
        label="CTF→NegRiskExchange",
        token=CTF_ADDRESS,
        spender=NEG_RISK_EXCHANGE_ADDRESS,
        kind=AllowanceKind.OPERATOR_APPROVAL,
        purpose="lets the NegRisk Exchange move outcome tokens when sell orders fill on negative-risk markets",
        sides=SELL_ONLY,
        market_kinds=NEG_RISK_ONLY,
    ),
    AllowanceRequirement(
        key="CTF_APPROVAL_FOR_NEG_RISK_ADAPTER",
        label="CTF→NegRiskAdapter",
        token=CTF_ADDRESS,
        spender=NEG_RISK_ADAPTER_ADDRESS,
        kind=AllowanceKind.OPERATOR_APPROVAL,
        purpose="lets the NegRisk Adapter move outcome tokens to convert and redeem negative-risk positions",
        sides=SELL_ONLY,
        market_kinds=NEG_RISK_ONLY,
    ),
)

REQUIREMENTS_BY_KEY = {r.key: r for r in ALLOWANCE_REQUIREMENTS}


def contract_name(address: str) -> str:
    """Get human-readable name for a contract address."""
    return CONTRACT_NAMES.get(address.lower(), address[:10] + "...")

"""
Polygon RPC gateway.

Wraps an AsyncWeb3 instance and the signing account. Everything that
touches the node goes through here: allowance and payout reads, fee
suggestions, pending nonces, signing and broadcasting grant and redemption
transactions, and waiting for confirmations.

Transport failures become UpstreamUnavailable. Node rejections (nonce
conflicts, underpriced replacements) are left untouched so the
NonceSequencer can classify them.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted
from web3.middleware import ExtraDataToPOAMiddleware

from .config import Settings
from .contracts import (
    ABI_BY_KIND,
    CTF_ABI,
    CTF_ADDRESS,
    ERC20_ABI,
    NEG_RISK_ADAPTER_ABI,
    NEG_RISK_ADAPTER_ADDRESS,
    PARENT_COLLECTION_ID,
    USDC_ADDRESS,
)
from .errors import SigningDisabled, TransactionReverted, UpstreamUnavailable
from .models import AllowanceKind, AllowanceRequirement, FeeBid

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)


class ChainClient:
    """
    Async access to the chain for one signing account.

    Attributes:
        w3: The AsyncWeb3 instance
        chain_id: Chain id stamped on every transaction
        account: Signing account, or None in read-only mode
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        chain_id: int,
        account: Optional[LocalAccount] = None,
        gas_limit: int = 200_000,
        redeem_gas_limit: int = 300_000,
        poll_interval: float = 2.0,
        receipt_timeout: float = 300.0,
    ):
        self.w3 = w3
        self.chain_id = chain_id
        self.account = account
        self.gas_limit = gas_limit
        self.redeem_gas_limit = redeem_gas_limit
        self.poll_interval = poll_interval
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainClient":
        """Build the client without making any network call."""
        provider = AsyncHTTPProvider(
            settings.rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=settings.request_timeout)},
        )
        w3 = AsyncWeb3(provider)
        # Polygon blocks carry POA extraData
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        account = Account.from_key(settings.private_key) if settings.private_key else None
        logger.debug(f"ChainClient configured for {settings.rpc_url} (chain {settings.chain_id})")
        return cls(
            w3=w3,
            chain_id=settings.chain_id,
            account=account,
            gas_limit=settings.approval_gas_limit,
        )

    async def close(self):
        """Close the provider's HTTP session."""
        await self.w3.provider.disconnect()

    @property
    def sender_address(self) -> str:
        """Address that signs and pays for transactions."""
        if self.account is None:
            raise SigningDisabled("No private key configured; on-chain writes are disabled")
        return self.account.address

    async def _rpc(self, awaitable, what: str):
        try:
            return await awaitable
        except TRANSPORT_ERRORS as e:
            raise UpstreamUnavailable(f"RPC call '{what}' failed: {e}", service="rpc") from e

    def _contract(self, address: str, abi):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    # === Reads ===

    async def read_allowance(self, token: str, owner: str, spender: str) -> int:
        """ERC-20 allowance in raw units."""
        contract = self._contract(token, ERC20_ABI)
        call = contract.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender),
        ).call()
        return int(await self._rpc(call, "allowance"))

    async def read_operator_approval(self, token: str, owner: str, operator: str) -> bool:
        """ERC-1155 isApprovedForAll flag."""
        contract = self._contract(token, ABI_BY_KIND[AllowanceKind.OPERATOR_APPROVAL])
        call = contract.functions.isApprovedForAll(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(operator),
        ).call()
        return bool(await self._rpc(call, "isApprovedForAll"))

    async def usdc_balance(self, owner: str) -> int:
        """USDC balance in raw units (6 decimals)."""
        contract = self._contract(USDC_ADDRESS, ERC20_ABI)
        call = contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()
        return int(await self._rpc(call, "balanceOf"))

    async def native_balance(self, owner: str) -> int:
        """POL/MATIC balance in wei, for gas."""
        return int(await self._rpc(self.w3.eth.get_balance(Web3.to_checksum_address(owner)), "get_balance"))

    # === Fees ===

    async def suggested_priority_fee(self) -> int:
        return int(await self._rpc(self.w3.eth.max_priority_fee, "eth_maxPriorityFeePerGas"))

    async def latest_base_fee(self) -> Optional[int]:
        block = await self._rpc(self.w3.eth.get_block("latest"), "get_block")
        base_fee = block.get("baseFeePerGas")
        return int(base_fee) if base_fee is not None else None

    async def gas_price(self) -> int:
        return int(await self._rpc(self.w3.eth.gas_price, "eth_gasPrice"))

    # === Nonces ===

    async def pending_nonce(self, address: Optional[str] = None) -> int:
        """Transaction count including pending transactions."""
        address = Web3.to_checksum_address(address or self.sender_address)
        return int(await self._rpc(
            self.w3.eth.get_transaction_count(address, "pending"),
            "get_transaction_count",
        ))

    # === Positions ===

    async def ctf_balance(self, owner: str, token_id: str) -> int:
        """ERC-1155 balance of one outcome token, in raw units."""
        contract = self._contract(CTF_ADDRESS, CTF_ABI)
        call = contract.functions.balanceOf(Web3.to_checksum_address(owner), int(token_id)).call()
        return int(await self._rpc(call, "balanceOf"))

    async def payout_denominator(self, condition_id: str) -> int:
        """Zero until the condition has been resolved."""
        contract = self._contract(CTF_ADDRESS, CTF_ABI)
        return int(await self._rpc(contract.functions.payoutDenominator(condition_id).call(), "payoutDenominator"))

    async def payout_numerators(self, condition_id: str, outcome_count: int = 2) -> List[int]:
        """Payout numerator per outcome index."""
        contract = self._contract(CTF_ADDRESS, CTF_ABI)
        calls = [
            self._rpc(contract.functions.payoutNumerators(condition_id, index).call(), "payoutNumerators")
            for index in range(outcome_count)
        ]
        return [int(n) for n in await asyncio.gather(*calls)]

    # === Writes ===

    async def _sign_and_send(self, fn, nonce: int, fee: FeeBid, gas: int) -> str:
        tx = await self._rpc(fn.build_transaction({
            "from": self.sender_address,
            "nonce": nonce,
            "gas": gas,
            "chainId": self.chain_id,
            **fee.as_tx_params(),
        }), "build_transaction")

        signed = self.account.sign_transaction(tx)
        tx_hash = await self._rpc(self.w3.eth.send_raw_transaction(signed.raw_transaction), "send_raw_transaction")
        return Web3.to_hex(tx_hash)

    async def send_grant(
        self,
        requirement: AllowanceRequirement,
        nonce: int,
        fee: FeeBid,
        amount: int,
    ) -> str:
        """
        Sign and broadcast the grant call for one requirement.

        Args:
            requirement: Which permission to grant
            nonce: Transaction nonce
            fee: Fee bid to use
            amount: ERC-20 allowance amount (ignored for operator approvals)

        Returns:
            Transaction hash (0x-prefixed)
        """
        contract = self._contract(requirement.token, ABI_BY_KIND[requirement.kind])
        spender = Web3.to_checksum_address(requirement.spender)

        if requirement.kind is AllowanceKind.ERC20_ALLOWANCE:
            fn = contract.functions.approve(spender, amount)
        else:
            fn = contract.functions.setApprovalForAll(spender, True)

        return await self._sign_and_send(fn, nonce, fee, self.gas_limit)

    async def send_redemption(
        self,
        condition_id: str,
        nonce: int,
        fee: FeeBid,
        index_sets: Optional[List[int]] = None,
        amounts: Optional[List[int]] = None,
    ) -> str:
        """
        Sign and broadcast a redeemPositions call.

        Standard markets redeem through CTF with the winning ``index_sets``.
        Negative-risk markets redeem through the NegRisk Adapter with
        ``amounts`` per outcome index. Exactly one of the two is given.
        """
        if (index_sets is None) == (amounts is None):
            raise ValueError("Pass exactly one of index_sets or amounts")

        if amounts is not None:
            adapter = self._contract(NEG_RISK_ADAPTER_ADDRESS, NEG_RISK_ADAPTER_ABI)
            fn = adapter.functions.redeemPositions(condition_id, amounts)
        else:
            ctf = self._contract(CTF_ADDRESS, CTF_ABI)
            fn = ctf.functions.redeemPositions(
                Web3.to_checksum_address(USDC_ADDRESS),
                PARENT_COLLECTION_ID,
                condition_id,
                index_sets,
            )

        return await self._sign_and_send(fn, nonce, fee, self.redeem_gas_limit)

    async def wait_for_confirmations(self, tx_hash: str, confirmations: int) -> str:
        """
        Block until ``tx_hash`` has ``confirmations`` confirmations.

        Returns:
            The confirmed transaction hash

        Raises:
            TransactionReverted: Receipt status is 0
            UpstreamUnavailable: Not mined before receipt_timeout
        """
        try:
            receipt = await self._rpc(
                self.w3.eth.wait_for_transaction_receipt(
                    tx_hash,
                    timeout=self.receipt_timeout,
                    poll_latency=self.poll_interval,
                ),
                "wait_for_transaction_receipt",
            )
        except TimeExhausted as e:
            raise UpstreamUnavailable(
                f"Transaction {tx_hash} not mined within {self.receipt_timeout:.0f}s",
                service="rpc",
                context={"tx_hash": tx_hash},
            ) from e

        if receipt["status"] == 0:
            raise TransactionReverted(f"Transaction {tx_hash} reverted on-chain", tx_hash=tx_hash)

        target_block = receipt["blockNumber"] + confirmations - 1
        while await self._rpc(self.w3.eth.block_number, "block_number") < target_block:
            await asyncio.sleep(self.poll_interval)

        return Web3.to_hex(receipt["transactionHash"])

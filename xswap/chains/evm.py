"""
EVM gateway for xswap escrows.

Talks to three contracts through web3:
- the limit order contract (fillOrder / hashOrder), which deploys the
  source escrow through the escrow factory on fill
- the escrow factory (deterministic escrow addresses)
- escrow clones (withdraw / publicWithdraw / cancel / publicCancel)
"""

import logging
from typing import Optional, Dict, Any

from eth_account import Account
from web3 import Web3

from ..config import LedgerConfig
from ..core import BytesLike, EscrowSide, ZERO_ADDRESS, hex_to_bytes, same_address
from .base import EscrowLedgerGateway, EscrowTxResult

log = logging.getLogger(__name__)

ORDER_COMPONENTS = [
    {"name": "salt", "type": "uint256"},
    {"name": "maker", "type": "address"},
    {"name": "receiver", "type": "address"},
    {"name": "makerAsset", "type": "address"},
    {"name": "takerAsset", "type": "address"},
    {"name": "makingAmount", "type": "uint256"},
    {"name": "takingAmount", "type": "uint256"},
]

IMMUTABLES_COMPONENTS = [
    {"name": "orderHash", "type": "bytes32"},
    {"name": "hashlock", "type": "bytes32"},
    {"name": "maker", "type": "address"},
    {"name": "taker", "type": "address"},
    {"name": "token", "type": "address"},
    {"name": "amount", "type": "uint256"},
    {"name": "timelocks", "type": "uint256"},
]

_ORDER_INPUT = {"name": "order", "type": "tuple", "components": ORDER_COMPONENTS}
_IMMUTABLES_INPUT = {"name": "immutables", "type": "tuple", "components": IMMUTABLES_COMPONENTS}

LIMIT_ORDER_ABI = [
    {
        "name": "fillOrder",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            _ORDER_INPUT,
            {"name": "signature", "type": "bytes"},
            {"name": "extraData", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "bytes32"}]
    },
    {
        "name": "hashOrder",
        "type": "function",
        "stateMutability": "view",
        "inputs": [_ORDER_INPUT],
        "outputs": [{"name": "", "type": "bytes32"}]
    },
]

ESCROW_ABI = [
    {
        "name": "withdraw",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "secret", "type": "bytes32"}, _IMMUTABLES_INPUT],
        "outputs": []
    },
    {
        "name": "publicWithdraw",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "secret", "type": "bytes32"}, _IMMUTABLES_INPUT],
        "outputs": []
    },
    {
        "name": "cancel",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [_IMMUTABLES_INPUT],
        "outputs": []
    },
    {
        "name": "publicCancel",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [_IMMUTABLES_INPUT],
        "outputs": []
    },
]

ESCROW_FACTORY_ABI = [
    {
        "name": "createDstEscrow",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {"name": "dstImmutables", "type": "tuple", "components": IMMUTABLES_COMPONENTS},
            {"name": "srcCancellationTimestamp", "type": "uint256"},
        ],
        "outputs": []
    },
    {
        "name": "addressOfEscrowSrc",
        "type": "function",
        "stateMutability": "view",
        "inputs": [_IMMUTABLES_INPUT],
        "outputs": [{"name": "", "type": "address"}]
    },
    {
        "name": "addressOfEscrowDst",
        "type": "function",
        "stateMutability": "view",
        "inputs": [_IMMUTABLES_INPUT],
        "outputs": [{"name": "", "type": "address"}]
    },
]

ERC20_ABI = [
    {
        "name": "approve",
        "type": "function",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"}
        ],
        "outputs": [{"name": "", "type": "uint256"}]
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}]
    },
]


class LocalKeySigner:
    """Key custody backed by an in-memory private key."""

    def __init__(self, private_key: str):
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_digest(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest as-is (no EIP-191 prefix)."""
        signed = self._account.unsafe_sign_hash(hex_to_bytes(digest, 32))
        return bytes(signed.signature)

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        return bytes(self._account.sign_transaction(tx).raw_transaction)


class EVMGateway(EscrowLedgerGateway):
    """
    EscrowLedgerGateway over web3.

    Args:
        config: Ledger endpoint, contract addresses and gas limits
        signer: Key custody object; read-only gateway if omitted and the
            config has no private key
        web3: Pre-built Web3 instance (otherwise HTTPProvider on rpc_url)
    """

    def __init__(self, config: LedgerConfig, signer: LocalKeySigner = None, web3: Web3 = None):
        self.config = config
        self.name = config.name
        if signer is None and config.private_key:
            signer = LocalKeySigner(config.private_key)
        self.signer = signer
        self._web3 = web3

    @property
    def web3(self) -> Web3:
        """Lazy-load web3 instance."""
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(self.config.rpc_url))
        return self._web3

    def _contract(self, address: str, abi: list):
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    # =========================================================================
    # Transport
    # =========================================================================

    def get_current_time(self) -> int:
        return int(self.web3.eth.get_block("latest")["timestamp"])

    def submit_transaction(self, tx: Dict[str, Any]) -> str:
        if self.signer is None:
            raise RuntimeError(f"No signing key configured for {self.name}")

        tx = dict(tx)
        tx.setdefault("from", self.signer.address)
        tx.setdefault("chainId", self.config.chain_id)
        if "nonce" not in tx:
            tx["nonce"] = self.web3.eth.get_transaction_count(self.signer.address, "pending")
        if "gasPrice" not in tx and "maxFeePerGas" not in tx:
            tx["gasPrice"] = int(self.web3.eth.gas_price * self.config.gas_price_multiplier)

        raw = self.signer.sign_transaction(tx)
        tx_hash = Web3.to_hex(self.web3.eth.send_raw_transaction(raw))
        log.info(f"[{self.name}] Sent TX {tx_hash}")
        return tx_hash

    def wait_for_confirmation(self, tx_hash: str, timeout: Optional[int] = None) -> Dict[str, Any]:
        return self.web3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=timeout or self.config.receipt_timeout
        )

    def _transact(self, fn, gas: int, label: str, data: Dict = None, value: int = 0) -> EscrowTxResult:
        """Build, send and confirm a contract call."""
        if self.signer is None:
            return EscrowTxResult(success=False, error=f"No signing key configured for {self.name}")

        tx_hash = None
        try:
            tx = fn.build_transaction({
                "from": self.signer.address,
                "gas": gas,
                "chainId": self.config.chain_id,
                "nonce": self.web3.eth.get_transaction_count(self.signer.address, "pending"),
                "gasPrice": int(self.web3.eth.gas_price * self.config.gas_price_multiplier),
            })
            if value:
                tx["value"] = value
            tx_hash = self.submit_transaction(tx)
            receipt = self.wait_for_confirmation(tx_hash)

            if receipt["status"] != 1:
                return EscrowTxResult(success=False, tx_hash=tx_hash,
                                      error=f"{label} transaction reverted", data=data)

            block = self.web3.eth.get_block(receipt["blockNumber"])
            log.info(f"[{self.name}] {label} confirmed in block {receipt['blockNumber']}")
            return EscrowTxResult(
                success=True,
                tx_hash=tx_hash,
                block_number=receipt["blockNumber"],
                block_timestamp=int(block["timestamp"]),
                data=data,
            )

        except Exception as e:
            log.exception(f"[{self.name}] {label} failed")
            return EscrowTxResult(success=False, tx_hash=tx_hash, error=str(e), data=data)

    # =========================================================================
    # Token reads
    # =========================================================================

    def read_allowance(self, token: str, owner: str, spender: str) -> int:
        erc20 = self._contract(token, ERC20_ABI)
        return erc20.functions.allowance(
            Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
        ).call()

    def read_balance(self, token: str, owner: str) -> int:
        """Native balance for the zero address, ERC20 balance otherwise."""
        owner = Web3.to_checksum_address(owner)
        if same_address(token, ZERO_ADDRESS):
            return self.web3.eth.get_balance(owner)
        return self._contract(token, ERC20_ABI).functions.balanceOf(owner).call()

    def ensure_allowance(self, token: str, amount: int, spender: str = None) -> EscrowTxResult:
        """Approve `spender` (default: escrow factory) for `amount` if short."""
        if self.signer is None:
            return EscrowTxResult(success=False, error=f"No signing key configured for {self.name}")
        spender = spender or self.config.escrow_factory_address

        current = self.read_allowance(token, self.signer.address, spender)
        if current >= amount:
            log.info(f"[{self.name}] Sufficient allowance already exists ({current})")
            return EscrowTxResult(success=True, data={"allowance": current})

        log.info(f"[{self.name}] Approving {spender} to spend {amount} of {token}")
        erc20 = self._contract(token, ERC20_ABI)
        fn = erc20.functions.approve(Web3.to_checksum_address(spender), amount)
        return self._transact(fn, self.config.approve_gas, "approve", data={"allowance": amount})

    # =========================================================================
    # Escrow calls
    # =========================================================================

    def hash_order(self, order) -> bytes:
        """Order hash as computed by the limit order contract."""
        lop = self._contract(self.config.limit_order_address, LIMIT_ORDER_ABI)
        return bytes(lop.functions.hashOrder(_order_tuple(order)).call())

    def escrow_address(self, immutables, side: EscrowSide = EscrowSide.SOURCE) -> str:
        """Deterministic escrow address from the factory."""
        factory = self._contract(self.config.escrow_factory_address, ESCROW_FACTORY_ABI)
        fn = (factory.functions.addressOfEscrowSrc if side == EscrowSide.SOURCE
              else factory.functions.addressOfEscrowDst)
        return fn(immutables.to_abi_tuple()).call()

    def fill_order(self, order, signature: BytesLike, extra_data: BytesLike) -> EscrowTxResult:
        lop = self._contract(self.config.limit_order_address, LIMIT_ORDER_ABI)
        fn = lop.functions.fillOrder(
            _order_tuple(order),
            hex_to_bytes(signature),
            hex_to_bytes(extra_data),
        )

        # Simulate first: surfaces reverts and returns the order hash
        try:
            simulated = fn.call({"from": self.signer.address if self.signer else None})
        except Exception as e:
            log.error(f"[{self.name}] fillOrder simulation failed: {e}")
            return EscrowTxResult(success=False, error=f"Simulation failed: {e}")

        order_hash = Web3.to_hex(simulated)
        log.info(f"[{self.name}] Simulation succeeded, order hash {order_hash}")
        return self._transact(fn, self.config.fill_gas, "fillOrder",
                              data={"order_hash": order_hash})

    def create_dst_escrow(self, immutables, src_cancellation: int = 0, value: int = 0) -> EscrowTxResult:
        """
        Deploy and fund the destination escrow through the factory. The
        factory stamps deployed_at with the block timestamp.
        """
        factory = self._contract(self.config.escrow_factory_address, ESCROW_FACTORY_ABI)
        fn = factory.functions.createDstEscrow(immutables.to_abi_tuple(), src_cancellation)
        return self._transact(fn, self.config.fill_gas, "createDstEscrow", value=value)

    def withdraw(self, escrow: str, secret: BytesLike, immutables) -> EscrowTxResult:
        fn = self._contract(escrow, ESCROW_ABI).functions.withdraw(
            hex_to_bytes(secret, 32), immutables.to_abi_tuple()
        )
        return self._transact(fn, self.config.withdraw_gas, "withdraw", data={"escrow": escrow})

    def public_withdraw(self, escrow: str, secret: BytesLike, immutables) -> EscrowTxResult:
        fn = self._contract(escrow, ESCROW_ABI).functions.publicWithdraw(
            hex_to_bytes(secret, 32), immutables.to_abi_tuple()
        )
        return self._transact(fn, self.config.withdraw_gas, "publicWithdraw", data={"escrow": escrow})

    def cancel(self, escrow: str, immutables) -> EscrowTxResult:
        fn = self._contract(escrow, ESCROW_ABI).functions.cancel(immutables.to_abi_tuple())
        return self._transact(fn, self.config.cancel_gas, "cancel", data={"escrow": escrow})

    def public_cancel(self, escrow: str, immutables) -> EscrowTxResult:
        fn = self._contract(escrow, ESCROW_ABI).functions.publicCancel(immutables.to_abi_tuple())
        return self._transact(fn, self.config.cancel_gas, "publicCancel", data={"escrow": escrow})


def _order_tuple(order) -> tuple:
    return (
        order.salt,
        order.maker,
        order.receiver,
        order.maker_asset,
        order.taker_asset,
        order.making_amount,
        order.taking_amount,
    )

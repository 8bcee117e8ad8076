"""
Chain Relay - submits Origin contract transactions over JSON-RPC

Mints are paid by the user: either the user's wallet signs the transaction
and the relay only broadcasts it, or a configured minter account signs. A
user-signed transaction is decoded and checked to be an OriginNFT mint on
this chain before anything is broadcast.

REP manager writes (Discord link, REP credit, referral) are signed and paid
by the backend wallet. The relay keeps no state besides a per-signer lock
that serialises nonce assignment, and it never retries.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import rlp
from eth_abi import decode as decode_abi
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from origin_backend.chain.abis import ORIGIN_NFT_ABI, REP_MANAGER_ABI
from origin_backend.core.config import Settings
from origin_backend.core.errors import (
    ChainFailure,
    ConfigurationError,
    InvalidRequest,
    OriginBackendError,
    TransactionRejected,
    UpstreamTimeout,
)
from origin_backend.core.security import sanitize_error_message

logger = logging.getLogger(__name__)

TRANSFER_TOPIC = bytes(Web3.keccak(text="Transfer(address,address,uint256)"))
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MINT_SELECTOR = bytes(Web3.keccak(text="mint(string)"))[:4]

# Index of the "to" field in the RLP payload of each supported typed
# transaction; calldata sits two fields later
TYPED_TO_INDEX = {1: 4, 2: 5}

HexLike = Union[str, bytes]


@dataclass(frozen=True)
class MintReceipt:
    """Outcome of a confirmed mint transaction"""

    tx_hash: str
    sender: str
    block_number: Optional[int]
    token_id: Optional[int]
    token_id_source: str  # "event", "contract" or "unresolved"
    referral_code: str = ""


@dataclass(frozen=True)
class SignedMint:
    """User-signed mint transaction that passed the pre-broadcast checks"""

    raw: bytes
    sender: str
    referral_code: str


def to_checksum(address: Optional[str], field_name: str = "address") -> str:
    """Validate an EVM address and return its checksummed form."""
    if not address or not Web3.is_address(address):
        raise InvalidRequest(f"Invalid {field_name}", detail=str(address))
    return Web3.to_checksum_address(address)


def _topic_address(topic: HexLike) -> str:
    raw = bytes.fromhex(topic[2:]) if isinstance(topic, str) else bytes(topic)
    return Web3.to_checksum_address(raw[-20:])


def _topic_int(topic: HexLike) -> int:
    raw = bytes.fromhex(topic[2:]) if isinstance(topic, str) else bytes(topic)
    return int.from_bytes(raw, "big")


def extract_minted_token_id(
    receipt: Dict[str, Any], nft_address: str, recipient: str
) -> Optional[int]:
    """Token id of the ERC-721 ``Transfer(0x0 -> recipient)`` log, if any."""
    nft_address = Web3.to_checksum_address(nft_address)
    recipient = Web3.to_checksum_address(recipient)
    for log in receipt.get("logs", []):
        topics = log.get("topics", [])
        if len(topics) != 4 or Web3.to_checksum_address(log.get("address", ZERO_ADDRESS)) != nft_address:
            continue
        first = topics[0]
        signature = bytes.fromhex(first[2:]) if isinstance(first, str) else bytes(first)
        if signature != TRANSFER_TOPIC:
            continue
        if _topic_address(topics[1]) == ZERO_ADDRESS and _topic_address(topics[2]) == recipient:
            return _topic_int(topics[3])
    return None


class ChainRelay:
    """
    Thin transaction relay for the OriginNFT and RepManager contracts.

    Args:
        web3: Connected AsyncWeb3 instance.
        origin_nft_address: Deployed OriginNFT contract.
        rep_manager_address: Deployed RepManager contract.
        chain_id: Chain id used when signing.
        backend_account: Signs and pays for REP manager writes.
        minter_account: Signs mints when no user-signed transaction is given.
        confirmation_timeout: Seconds to wait for a receipt.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        origin_nft_address: str,
        rep_manager_address: str,
        chain_id: int,
        *,
        backend_account: Optional[LocalAccount] = None,
        minter_account: Optional[LocalAccount] = None,
        confirmation_timeout: float = 120.0,
    ):
        self.web3 = web3
        self.chain_id = chain_id
        self.origin_nft_address = Web3.to_checksum_address(origin_nft_address)
        self.rep_manager_address = Web3.to_checksum_address(rep_manager_address)
        self.origin_nft = web3.eth.contract(address=self.origin_nft_address, abi=ORIGIN_NFT_ABI)
        self.rep_manager = web3.eth.contract(address=self.rep_manager_address, abi=REP_MANAGER_ABI)
        self.backend_account = backend_account
        self.minter_account = minter_account
        self.confirmation_timeout = confirmation_timeout
        self._nonce_locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainRelay":
        web3 = AsyncWeb3(AsyncHTTPProvider(settings.chain_rpc_url))
        return cls(
            web3,
            settings.origin_nft_address,
            settings.rep_manager_address,
            settings.chain_id,
            backend_account=_load_account(settings.backend_wallet_private_key, "BACKEND_WALLET_PRIVATE_KEY"),
            minter_account=_load_account(settings.minter_private_key, "MINTER_PRIVATE_KEY"),
            confirmation_timeout=settings.tx_confirmation_timeout,
        )

    @property
    def has_backend_wallet(self) -> bool:
        return self.backend_account is not None

    # ------------------------------------------------------------------
    # Mint (user-paid)
    # ------------------------------------------------------------------

    async def build_mint_transaction(self, sender: str, referral_code: str = "") -> Dict[str, Any]:
        """Unsigned mint transaction for the user's wallet to sign."""
        sender = to_checksum(sender, "wallet address")
        try:
            nonce = await self.web3.eth.get_transaction_count(sender, "pending")
            tx = await self.origin_nft.functions.mint(referral_code).build_transaction(
                {"from": sender, "nonce": nonce, "chainId": self.chain_id}
            )
        except OriginBackendError:
            raise
        except ContractLogicError as exc:
            raise TransactionRejected("Mint would revert", detail=_describe(exc)) from exc
        except Exception as exc:
            raise ChainFailure("Could not prepare mint transaction", detail=_describe(exc)) from exc
        return dict(tx)

    def decode_signed_mint(self, signed_transaction: HexLike) -> SignedMint:
        """
        Decode a user-signed raw transaction and check it is an OriginNFT mint.

        Raises:
            InvalidRequest: If the bytes do not decode, the signature does not
                recover, or the transaction targets another chain, contract
                or function.
        """
        raw = _to_bytes(signed_transaction)
        try:
            sender = Account.recover_transaction(raw)
            chain_id, to, data = _transaction_fields(raw)
        except Exception as exc:
            raise InvalidRequest("Signed mint transaction is malformed", detail=_describe(exc)) from exc

        if chain_id is not None and chain_id != self.chain_id:
            raise InvalidRequest(
                "Signed mint transaction is for another chain", detail=f"chain id {chain_id}"
            )
        if len(to) != 20 or Web3.to_checksum_address("0x" + to.hex()) != self.origin_nft_address:
            raise InvalidRequest(
                "Transaction is not an Origin NFT mint", detail=f"to=0x{to.hex()}"
            )
        if data[:4] != MINT_SELECTOR:
            raise InvalidRequest(
                "Transaction is not an Origin NFT mint", detail=f"selector=0x{data[:4].hex()}"
            )
        try:
            (referral_code,) = decode_abi(["string"], data[4:])
        except Exception as exc:
            raise InvalidRequest("Signed mint calldata is malformed", detail=_describe(exc)) from exc
        return SignedMint(raw=raw, sender=sender, referral_code=referral_code)

    def check_mint_inputs(self, signed_transaction: Optional[HexLike] = None) -> Optional[SignedMint]:
        """
        Validate what a mint needs without touching the chain.

        Returns the decoded user transaction, or None when the minter key
        will sign.

        Raises:
            InvalidRequest: If the signed transaction fails the mint checks.
            ConfigurationError: If there is nothing to sign the mint with.
        """
        if signed_transaction is not None:
            return self.decode_signed_mint(signed_transaction)
        if self.minter_account is None:
            raise ConfigurationError(
                "No signed mint transaction supplied and no minter key configured"
            )
        return None

    async def mint(
        self,
        referral_code: str = "",
        *,
        signed_transaction: Optional[Union[HexLike, SignedMint]] = None,
        signer: Optional[LocalAccount] = None,
    ) -> MintReceipt:
        """
        Submit a mint and wait for its receipt.

        A user-signed raw transaction is checked and broadcast as-is, and its
        own calldata decides the referral code; otherwise the mint is signed
        by ``signer`` or the configured minter account.

        Raises:
            ConfigurationError: If there is nothing to sign the mint with.
            InvalidRequest: If the signed transaction is not an OriginNFT mint.
            TransactionRejected: If the node refuses the tx or it reverts.
            ChainFailure: On RPC errors.
            UpstreamTimeout: If no receipt arrives in time.
        """
        if signed_transaction is not None:
            signed = signed_transaction
            if not isinstance(signed, SignedMint):
                signed = self.decode_signed_mint(signed)
            sender = signed.sender
            referral_code = signed.referral_code
            tx_hash = await self._broadcast(signed.raw)
        else:
            account = signer or self.minter_account
            if account is None:
                raise ConfigurationError(
                    "No signed mint transaction supplied and no minter key configured"
                )
            sender = account.address
            tx_hash = await self._sign_and_send(account, self.origin_nft.functions.mint(referral_code))

        receipt = await self._wait_for_receipt(tx_hash)
        token_id, source = await self._resolve_token_id(receipt, sender)
        logger.info("Mint confirmed in tx %s for %s (token %s via %s)", tx_hash, sender, token_id, source)
        return MintReceipt(
            tx_hash=tx_hash,
            sender=sender,
            block_number=receipt.get("blockNumber"),
            token_id=token_id,
            token_id_source=source,
            referral_code=referral_code,
        )

    async def _resolve_token_id(self, receipt: Dict[str, Any], sender: str) -> Tuple[Optional[int], str]:
        token_id = extract_minted_token_id(receipt, self.origin_nft_address, sender)
        if token_id is not None:
            return token_id, "event"
        try:
            token_id = await self.origin_nft.functions.addressToTokenId(sender).call()
        except Exception as exc:
            logger.warning("addressToTokenId lookup failed for %s: %s", sender, _describe(exc))
            return None, "unresolved"
        if token_id:
            return int(token_id), "contract"
        logger.warning("Mint receipt for %s carries no token id", sender)
        return None, "unresolved"

    # ------------------------------------------------------------------
    # REP manager writes (backend-paid)
    # ------------------------------------------------------------------

    async def link_discord(self, wallet: str, discord_id: str) -> str:
        wallet = to_checksum(wallet, "wallet")
        if not discord_id:
            raise InvalidRequest("discordId is required")
        return await self._backend_write(self.rep_manager.functions.linkDiscord(wallet, discord_id))

    async def credit_rep(self, user: str, amount: int, reason: str) -> str:
        user = to_checksum(user, "user")
        if amount is None or amount <= 0:
            raise InvalidRequest("amount must be a positive integer")
        return await self._backend_write(self.rep_manager.functions.creditRep(user, amount, reason or ""))

    async def register_referral(self, referred: str, referrer: str) -> str:
        referred = to_checksum(referred, "referred address")
        referrer = to_checksum(referrer, "referrer address")
        if referred == referrer:
            raise InvalidRequest("A wallet cannot refer itself")
        return await self._backend_write(self.rep_manager.functions.registerReferral(referred, referrer))

    async def link_contracts(self, rep_manager: str, badge_manager: str, marketplace: str) -> str:
        """Point OriginNFT at its companion contracts (owner-only)."""
        call = self.origin_nft.functions.setContracts(
            to_checksum(rep_manager, "rep manager"),
            to_checksum(badge_manager, "badge manager"),
            to_checksum(marketplace, "marketplace"),
        )
        return await self._backend_write(call)

    async def _backend_write(self, call) -> str:
        if self.backend_account is None:
            raise ConfigurationError("Backend wallet not configured")
        tx_hash = await self._sign_and_send(self.backend_account, call)
        await self._wait_for_receipt(tx_hash)
        return tx_hash

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_token_id(self, wallet: str) -> Optional[int]:
        wallet = to_checksum(wallet, "wallet")
        token_id = await self._call(self.origin_nft.functions.addressToTokenId(wallet))
        return int(token_id) or None

    async def get_referral_code(self, wallet: str) -> Optional[str]:
        wallet = to_checksum(wallet, "wallet")
        code = await self._call(self.origin_nft.functions.getReferralCode(wallet))
        return code or None

    async def get_user_badges(self, wallet: str) -> Tuple[List[int], List[int]]:
        wallet = to_checksum(wallet, "wallet")
        badge_ids, amounts = await self._call(self.origin_nft.functions.getUserBadges(wallet))
        return [int(value) for value in badge_ids], [int(value) for value in amounts]

    async def _call(self, call) -> Any:
        try:
            return await call.call()
        except Exception as exc:
            raise ChainFailure("Contract read failed", detail=_describe(exc)) from exc

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _lock_for(self, address: str) -> asyncio.Lock:
        return self._nonce_locks.setdefault(address, asyncio.Lock())

    async def _sign_and_send(self, account: LocalAccount, call) -> str:
        async with self._lock_for(account.address):
            try:
                nonce = await self.web3.eth.get_transaction_count(account.address, "pending")
                tx = await call.build_transaction(
                    {"from": account.address, "nonce": nonce, "chainId": self.chain_id}
                )
            except ContractLogicError as exc:
                raise TransactionRejected("Transaction would revert", detail=_describe(exc)) from exc
            except Exception as exc:
                raise ChainFailure("Could not build transaction", detail=_describe(exc)) from exc
            signed = account.sign_transaction(tx)
            return await self._broadcast(signed.raw_transaction)

    async def _broadcast(self, raw_transaction: bytes) -> str:
        try:
            tx_hash = await self.web3.eth.send_raw_transaction(raw_transaction)
        except (ContractLogicError, Web3RPCError) as exc:
            raise TransactionRejected("Transaction rejected by node", detail=_describe(exc)) from exc
        except Exception as exc:
            raise ChainFailure("Could not submit transaction", detail=_describe(exc)) from exc
        return Web3.to_hex(tx_hash)

    async def _wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            )
        except TimeExhausted as exc:
            raise UpstreamTimeout("Transaction not confirmed in time", detail=tx_hash) from exc
        except Exception as exc:
            raise ChainFailure("Could not fetch transaction receipt", detail=_describe(exc)) from exc

        if receipt.get("status") != 1:
            raise TransactionRejected("Transaction reverted", detail=tx_hash)
        return receipt


def _load_account(key, env_name: str) -> Optional[LocalAccount]:
    if key is None:
        return None
    try:
        return Account.from_key(key.get_secret_value())
    except Exception as exc:
        raise ConfigurationError(f"{env_name} is not a valid private key") from exc


def _to_bytes(value: HexLike) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    except ValueError as exc:
        raise InvalidRequest("Signed mint transaction is not valid hex") from exc


def _transaction_fields(raw: bytes) -> Tuple[Optional[int], bytes, bytes]:
    """Chain id, recipient and calldata of a signed legacy, EIP-2930 or EIP-1559 transaction."""
    if not raw:
        raise ValueError("empty transaction")
    if raw[0] >= 0xC0:
        _nonce, _gas_price, _gas, to, _value, data, v, _r, _s = rlp.decode(raw)
        v = int.from_bytes(v, "big")
        # Pre-EIP-155 signatures carry no chain id
        return ((v - 35) // 2 if v >= 35 else None), to, data
    if raw[0] not in TYPED_TO_INDEX:
        raise ValueError(f"unsupported transaction type {raw[0]}")
    fields = rlp.decode(raw[1:])
    to_index = TYPED_TO_INDEX[raw[0]]
    return int.from_bytes(fields[0], "big"), fields[to_index], fields[to_index + 2]


def _describe(exc: Exception) -> str:
    return sanitize_error_message(str(exc) or type(exc).__name__)

"""
Global test configuration and fixtures for the Origin mint backend

Upstream services are replaced at the transport level: the inference
endpoint and Pinata through ``httpx.MockTransport``, the chain through a
mocked ``AsyncWeb3`` that still signs with real eth-account keys. Services
themselves are the real implementations.
"""

import asyncio
import io
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock, MagicMock

# The app mounts its image directory at import time
TEST_API_KEY = "test-api-key"
os.environ["OUTPUT_DIR"] = tempfile.mkdtemp(prefix="origin-test-outputs-")
os.environ["API_KEY"] = TEST_API_KEY
os.environ["DEV_MODE"] = "true"
for _name in ("REDIS_URL", "BACKEND_WALLET_PRIVATE_KEY", "MINTER_PRIVATE_KEY", "REP_REQUIRES_API_KEY"):
    os.environ.pop(_name, None)

import httpx  # noqa: E402
import pytest  # noqa: E402
from eth_abi import encode as encode_abi  # noqa: E402
from eth_account import Account  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402
from pydantic import SecretStr  # noqa: E402
from web3 import Web3  # noqa: E402
from web3.exceptions import TimeExhausted  # noqa: E402

from origin_backend.api.deps import get_services  # noqa: E402
from origin_backend.core.config import settings  # noqa: E402
from origin_backend.core.limiter import limiter  # noqa: E402
from origin_backend.main import app  # noqa: E402
from origin_backend.services.chain_relay import MINT_SELECTOR, TRANSFER_TOPIC, ChainRelay  # noqa: E402
from origin_backend.services.container import build_services  # noqa: E402
from origin_backend.services.session_store import GenerationSessionStore  # noqa: E402

NFT_ADDRESS = Web3.to_checksum_address("0xb70b4dab3f51a7ed2e353f84ccfae1e0da69e6be")
REP_MANAGER_ADDRESS = Web3.to_checksum_address("0x4df5eca74b41a7e5c30731c815558107a9add185")
GATEWAY = "https://gateway.test/ipfs/"

# Well-known development keys, never funded on a real network
BACKEND_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
MINTER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
USER_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"


def png_bytes(size=(96, 96), color=(30, 60, 90)) -> bytes:
    """Encode a solid-color PNG"""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


# ============================================================================
# Upstream HTTP fakes
# ============================================================================

class FakeInference:
    """Inference endpoint answering every prompt with a small PNG."""

    def __init__(self):
        self.prompts: List[str] = []
        self.auth_headers: List[Optional[str]] = []
        self.fail_on: Set[int] = set()
        self.fail_status = 503
        self.raise_timeout = False
        self.empty = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        index = len(self.prompts)
        self.prompts.append(json.loads(request.content)["inputs"])
        self.auth_headers.append(request.headers.get("Authorization"))
        if self.raise_timeout:
            raise httpx.ReadTimeout("model timed out", request=request)
        if index in self.fail_on:
            return httpx.Response(self.fail_status, text="Model is currently loading")
        if self.empty:
            return httpx.Response(200, content=b"")
        return httpx.Response(200, content=png_bytes(color=(index * 40 % 255, 80, 120)))


class FakePinata:
    """pinFileToIPFS endpoint issuing sequential content ids."""

    def __init__(self):
        self.uploads: List[Dict[str, object]] = []
        self.fail_on: Set[int] = set()
        self.raise_timeout = False
        self.omit_hash = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        index = len(self.uploads)
        body = request.content
        is_metadata = b'filename="metadata.json"' in body
        upload = {"auth": request.headers.get("Authorization"), "is_metadata": is_metadata}
        if is_metadata:
            part = body.split(b'filename="metadata.json"', 1)[1].split(b"\r\n\r\n", 1)[1]
            upload["document"] = json.loads(part.split(b"\r\n--", 1)[0])
        self.uploads.append(upload)

        if self.raise_timeout:
            raise httpx.ConnectTimeout("pinning timed out", request=request)
        if index in self.fail_on:
            return httpx.Response(500, json={"error": "Internal pinning error"})
        if self.omit_hash:
            return httpx.Response(200, json={"PinSize": 10})
        return httpx.Response(200, json={"IpfsHash": f"Qm{index:044d}", "PinSize": 10})

    @property
    def metadata_documents(self) -> List[dict]:
        return [upload["document"] for upload in self.uploads if upload["is_metadata"]]


# ============================================================================
# Chain fake
# ============================================================================

class FakeChain:
    """
    Mocked AsyncWeb3 that tracks nonces and produces receipts.

    Transactions are really signed by the relay; the fake recovers the sender
    from the raw bytes, so nonce sequencing is observable.
    """

    def __init__(self):
        self.web3 = MagicMock()
        self.web3.eth.contract.side_effect = self._contract
        self.web3.eth.get_transaction_count = AsyncMock(side_effect=self._nonce)
        self.web3.eth.send_raw_transaction = AsyncMock(side_effect=self._send)
        self.web3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=self._receipt)
        self.contracts: Dict[str, MagicMock] = {}
        self.built: List[dict] = []
        self.sent: List[str] = []
        self._last_to: Dict[str, str] = {}
        self._pending: Dict[str, tuple] = {}
        self.send_error: Optional[Exception] = None
        self.build_error: Optional[Exception] = None
        self.revert = False
        self.receipt_timeout = False
        self.emit_transfer = True
        self.minted_token_id = 7
        self.token_id_view = 0

    def _contract(self, address=None, abi=None):
        contract = MagicMock()

        async def build_transaction(params):
            return await self._build(address, params)

        for name in ("mint", "linkDiscord", "creditRep", "registerReferral", "setContracts"):
            function = getattr(contract.functions, name)
            function.return_value.build_transaction = AsyncMock(side_effect=build_transaction)
        contract.functions.addressToTokenId.return_value.call = AsyncMock(
            side_effect=lambda: self.token_id_view
        )
        self.contracts[address] = contract
        return contract

    async def _build(self, address: str, params: dict) -> dict:
        await asyncio.sleep(0)
        if self.build_error is not None:
            raise self.build_error
        self.built.append(dict(params))
        self._last_to[params["from"]] = address
        return {
            "to": address,
            "value": 0,
            "gas": 200_000,
            "gasPrice": 1_000_000_000,
            "nonce": params["nonce"],
            "chainId": params["chainId"],
            "data": "0x",
        }

    async def _nonce(self, address: str, block_identifier: str = "latest") -> int:
        await asyncio.sleep(0)
        return sum(1 for sender, _ in self._pending.values() if sender == address)

    async def _send(self, raw: bytes):
        await asyncio.sleep(0)
        if self.send_error is not None:
            raise self.send_error
        sender = Account.recover_transaction(raw)
        tx_hash = Web3.keccak(raw)
        self._pending[Web3.to_hex(tx_hash)] = (sender, self._last_to.get(sender))
        self.sent.append(Web3.to_hex(tx_hash))
        return tx_hash

    async def _receipt(self, tx_hash: str, timeout: float = 120):
        if self.receipt_timeout:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        sender, to = self._pending[tx_hash]
        logs = []
        if to == NFT_ADDRESS and self.emit_transfer:
            logs.append({
                "address": NFT_ADDRESS,
                "topics": [
                    TRANSFER_TOPIC,
                    bytes(32),
                    bytes(12) + bytes.fromhex(sender[2:]),
                    self.minted_token_id.to_bytes(32, "big"),
                ],
                "data": "0x",
            })
        return {
            "transactionHash": tx_hash,
            "status": 0 if self.revert else 1,
            "to": to,
            "from": sender,
            "blockNumber": 100 + len(self.sent),
            "logs": logs,
        }

    def sign_user_mint(
        self,
        account,
        nonce: int = 0,
        to: str = NFT_ADDRESS,
        referral_code: str = "",
        data: Optional[bytes] = None,
        chain_id: int = 984,
        typed: bool = False,
    ) -> str:
        """Sign a mint as the user's wallet would; returns the raw tx hex."""
        self._last_to[account.address] = to
        if data is None:
            data = MINT_SELECTOR + encode_abi(["string"], [referral_code])
        transaction = {
            "to": to,
            "value": 0,
            "gas": 200_000,
            "nonce": nonce,
            "chainId": chain_id,
            "data": Web3.to_hex(data),
        }
        if typed:
            transaction.update(type=2, maxFeePerGas=2_000_000_000, maxPriorityFeePerGas=1_000_000_000)
        else:
            transaction["gasPrice"] = 1_000_000_000
        signed = account.sign_transaction(transaction)
        return Web3.to_hex(signed.raw_transaction)

    def contract(self, address: str) -> MagicMock:
        return self.contracts[address]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_limiter():
    """Clear rate limit counters so tests do not affect each other."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def make_png():
    return png_bytes


@pytest.fixture
def logo_path(tmp_path) -> Path:
    path = tmp_path / "logo.png"
    Image.new("RGBA", (200, 100), (255, 0, 0, 128)).save(path)
    return path


@pytest.fixture
def output_dir(tmp_path) -> Path:
    path = tmp_path / "outputs"
    path.mkdir()
    return path


@pytest.fixture
def session_store() -> GenerationSessionStore:
    return GenerationSessionStore(ttl_seconds=3600)


@pytest.fixture
def inference() -> FakeInference:
    return FakeInference()


@pytest.fixture
def pinata() -> FakePinata:
    return FakePinata()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def backend_account():
    return Account.from_key(BACKEND_KEY)


@pytest.fixture
def minter_account():
    return Account.from_key(MINTER_KEY)


@pytest.fixture
def user_account():
    return Account.from_key(USER_KEY)


@pytest.fixture
def relay(chain, backend_account, minter_account) -> ChainRelay:
    return ChainRelay(
        chain.web3,
        NFT_ADDRESS,
        REP_MANAGER_ADDRESS,
        984,
        backend_account=backend_account,
        minter_account=minter_account,
        confirmation_timeout=5,
    )


@pytest.fixture
def api_output_dir() -> Path:
    """The directory served under /images, emptied around each test."""
    directory = settings.output_dir
    directory.mkdir(parents=True, exist_ok=True)
    for path in directory.iterdir():
        if path.is_file():
            path.unlink()
    yield directory
    for path in directory.iterdir():
        if path.is_file():
            path.unlink()


@pytest.fixture
def services(api_output_dir, logo_path, inference, pinata, relay):
    test_settings = settings.model_copy(update={
        "output_dir": api_output_dir,
        "logo_path": logo_path,
        "api_key": SecretStr(TEST_API_KEY),
        "ipfs_gateway_url": GATEWAY,
        "hf_token": SecretStr("hf_test_token"),
        "pinata_jwt": SecretStr("pinata-test-jwt"),
    })
    return build_services(
        test_settings,
        inference_client=httpx.AsyncClient(transport=httpx.MockTransport(inference)),
        pinning_client=httpx.AsyncClient(transport=httpx.MockTransport(pinata)),
        relay=relay,
    )


@pytest.fixture
def client(services):
    """FastAPI test client wired to the fake upstreams"""
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": TEST_API_KEY}


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: isolated component tests")
    config.addinivalue_line("markers", "integration: tests going through the HTTP app")
    config.addinivalue_line("markers", "critical: mark test as critical path functionality")
    config.addinivalue_line("markers", "security: mark test as security-related")
    config.addinivalue_line("markers", "chain: tests exercising the chain relay")


def pytest_collection_modifyitems(config, items):
    """Add markers based on file location"""
    for item in items:
        if "security" in str(item.fspath):
            item.add_marker(pytest.mark.security)
        if "critical" in str(item.fspath):
            item.add_marker(pytest.mark.critical)

"""
Mint Orchestrator - sequences publish, mint and the secondary REP side effects

One call to :meth:`MintOrchestrator.run` is one mint attempt. Upload and mint
failures end the attempt in ``failed`` with no record; Discord link and
referral failures only add warnings to an otherwise complete outcome.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from origin_backend.core.errors import InvalidRequest, OriginBackendError, TransactionRejected
from origin_backend.core.schemas.mint import MintRequest
from origin_backend.services.chain_relay import ChainRelay, MintReceipt, to_checksum
from origin_backend.services.ipfs_publisher import IpfsPublisher, PublishedAsset

logger = logging.getLogger(__name__)


class MintState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    MINTING = "minting"
    LINKING = "linking"
    REGISTERING = "registering"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


# Progress reported on entering each state
STATE_PROGRESS: Dict[MintState, int] = {
    MintState.IDLE: 0,
    MintState.UPLOADING: 0,
    MintState.MINTING: 30,
    MintState.LINKING: 70,
    MintState.REGISTERING: 80,
    MintState.FINALIZING: 90,
    MintState.COMPLETE: 100,
}

ProgressCallback = Callable[[MintState, int], None]


class SideEffectStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class SideEffectResult(BaseModel):
    """Result of a best-effort REP manager write"""

    status: SideEffectStatus
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class MintError(BaseModel):
    kind: str
    message: str
    detail: Optional[str] = None
    status_code: int = 500


class ProgressEvent(BaseModel):
    state: MintState
    progress: int


class MintRecord(BaseModel):
    """Minted NFT as handed back to the caller for persistence"""

    id: str
    token_id: Optional[int]
    token_id_source: str
    name: str
    description: str
    image: str
    metadata_url: str
    minted_at: datetime
    tx_hash: str
    owner: str
    referral_code: Optional[str] = None
    badges: List[int] = Field(default_factory=list)
    explorer_url: Optional[str] = None


class MintOutcome(BaseModel):
    state: MintState
    progress: int
    record: Optional[MintRecord] = None
    error: Optional[MintError] = None
    discord_link: SideEffectResult = SideEffectResult(status=SideEffectStatus.SKIPPED)
    referral: SideEffectResult = SideEffectResult(status=SideEffectStatus.SKIPPED)
    warnings: List[str] = Field(default_factory=list)
    timeline: List[ProgressEvent] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is MintState.COMPLETE


class _Attempt:
    """Mutable progress of one run, frozen into a MintOutcome at the end."""

    def __init__(self, on_progress: Optional[ProgressCallback]):
        self.state = MintState.IDLE
        self.progress = 0
        self.timeline: List[ProgressEvent] = []
        self._on_progress = on_progress

    def enter(self, state: MintState) -> None:
        self.state = state
        if state is not MintState.FAILED:
            self.progress = STATE_PROGRESS[state]
        self.timeline.append(ProgressEvent(state=state, progress=self.progress))
        logger.debug("Mint attempt entered %s (%d%%)", state.value, self.progress)
        if self._on_progress is not None:
            self._on_progress(state, self.progress)


class MintOrchestrator:
    """
    Runs the publish -> mint -> link -> register flow for one selected variant.

    Args:
        publisher: Pins the variant and its metadata.
        relay: Submits the mint and the REP manager writes.
        explorer_url: Block explorer base used for transaction links.
    """

    def __init__(
        self,
        publisher: IpfsPublisher,
        relay: ChainRelay,
        explorer_url: Optional[str] = None,
    ):
        self.publisher = publisher
        self.relay = relay
        self.explorer_url = explorer_url.rstrip("/") if explorer_url else None

    async def run(
        self, request: MintRequest, on_progress: Optional[ProgressCallback] = None
    ) -> MintOutcome:
        """
        Execute a mint attempt.

        Raises:
            InvalidRequest: Before any side effect, if the request or its signed
                mint transaction is malformed.
            ConfigurationError: Before any side effect, if nothing can sign
                the mint.
        """
        if not request.filename:
            raise InvalidRequest("Filename is required")
        wallet = to_checksum(request.wallet_address, "wallet address") if request.wallet_address else None
        referrer = None
        if request.referrer_address:
            referrer = to_checksum(request.referrer_address, "referrer address")
        # Must run before publish consumes the batch
        signed_mint = self.relay.check_mint_inputs(request.signed_mint_tx)

        attempt = _Attempt(on_progress)
        attempt.enter(MintState.UPLOADING)
        try:
            asset = await self.publisher.publish(
                request.filename, request.name, request.description
            )
        except OriginBackendError as exc:
            return self._fail(attempt, exc)

        attempt.enter(MintState.MINTING)
        try:
            receipt = await self.relay.mint(
                request.referral_code, signed_transaction=signed_mint
            )
        except OriginBackendError as exc:
            logger.warning(
                "Mint failed after %s was pinned as %s", request.filename, asset.metadata_url
            )
            return self._fail(attempt, exc)

        warnings: List[str] = []
        if wallet is not None and wallet != receipt.sender:
            warnings.append(
                f"Mint was sent by {receipt.sender}, not the requested wallet {wallet}"
            )
        owner = receipt.sender

        attempt.enter(MintState.LINKING)
        discord_link = await self._best_effort(
            "linkDiscord",
            self.relay.link_discord,
            owner,
            request.discord_id,
            enabled=bool(request.discord_id),
        )

        attempt.enter(MintState.REGISTERING)
        referral = await self._best_effort(
            "registerReferral",
            self.relay.register_referral,
            owner,
            referrer,
            enabled=referrer is not None,
        )

        for label, result in (("Discord link", discord_link), ("Referral registration", referral)):
            if result.status is SideEffectStatus.FAILED:
                warnings.append(f"{label} did not apply: {result.error}")

        attempt.enter(MintState.FINALIZING)
        record = self._record(asset, receipt)
        attempt.enter(MintState.COMPLETE)
        logger.info("Mint complete for %s (token %s)", owner, record.token_id)

        return MintOutcome(
            state=attempt.state,
            progress=attempt.progress,
            record=record,
            discord_link=discord_link,
            referral=referral,
            warnings=warnings,
            timeline=attempt.timeline,
        )

    def _fail(self, attempt: _Attempt, exc: OriginBackendError) -> MintOutcome:
        failed_in = attempt.state
        kind = exc.error
        if failed_in is MintState.MINTING and isinstance(exc, TransactionRejected):
            # Wallet refusal or revert: nothing was minted
            kind = "mint_rejected"
        attempt.enter(MintState.FAILED)
        logger.error("Mint attempt failed while %s: %s", failed_in.value, exc.message)
        return MintOutcome(
            state=attempt.state,
            progress=attempt.progress,
            error=MintError(
                kind=kind,
                message=exc.message,
                detail=exc.detail,
                status_code=exc.status_code,
            ),
            timeline=attempt.timeline,
        )

    async def _best_effort(
        self,
        label: str,
        operation: Callable[..., Awaitable[str]],
        *args,
        enabled: bool,
    ) -> SideEffectResult:
        if not enabled:
            return SideEffectResult(status=SideEffectStatus.SKIPPED)
        try:
            tx_hash = await operation(*args)
        except OriginBackendError as exc:
            logger.warning("%s failed after mint: %s", label, exc.message)
            return SideEffectResult(status=SideEffectStatus.FAILED, error=exc.message)
        return SideEffectResult(status=SideEffectStatus.SUCCEEDED, tx_hash=tx_hash)

    def _record(self, asset: PublishedAsset, receipt: MintReceipt) -> MintRecord:
        metadata = asset.metadata
        return MintRecord(
            id=uuid.uuid4().hex,
            token_id=receipt.token_id,
            token_id_source=receipt.token_id_source,
            name=metadata["name"],
            description=metadata["description"],
            image=asset.image_url,
            metadata_url=asset.metadata_url,
            minted_at=datetime.now(timezone.utc),
            tx_hash=receipt.tx_hash,
            owner=receipt.sender,
            referral_code=receipt.referral_code or None,
            explorer_url=f"{self.explorer_url}/tx/{receipt.tx_hash}" if self.explorer_url else None,
        )

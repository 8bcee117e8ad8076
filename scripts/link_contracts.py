#!/usr/bin/env python3
"""
Contract linking script for the Origin mint backend.

Points OriginNFT at its RepManager, BadgeManager and Marketplace contracts
by calling ``setContracts`` with the backend wallet, which must own OriginNFT.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from origin_backend.core.config import settings
from origin_backend.core.errors import OriginBackendError
from origin_backend.services.chain_relay import ChainRelay


async def link_contracts() -> bool:
    """Submit setContracts and wait for confirmation"""
    print("🔗 Origin contract linking")
    print("=" * 40)
    print(f"RPC URL:       {settings.chain_rpc_url}")
    print(f"OriginNFT:     {settings.origin_nft_address}")
    print(f"RepManager:    {settings.rep_manager_address}")
    print(f"BadgeManager:  {settings.badge_manager_address}")
    print(f"Marketplace:   {settings.marketplace_address}")

    try:
        relay = ChainRelay.from_settings(settings)
        tx_hash = await relay.link_contracts(
            settings.rep_manager_address,
            settings.badge_manager_address,
            settings.marketplace_address,
        )
    except OriginBackendError as e:
        print(f"❌ Linking failed: {e.message}")
        if e.detail:
            print(f"   {e.detail}")
        return False

    print(f"Transaction: {tx_hash}")
    print(f"Explorer:    {settings.block_explorer_url.rstrip('/')}/tx/{tx_hash}")
    print("✅ Contracts linked!")
    return True


if __name__ == "__main__":
    success = asyncio.run(link_contracts())
    sys.exit(0 if success else 1)

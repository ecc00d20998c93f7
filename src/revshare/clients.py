"""
revshare/clients.py

External collaborators of the distribution engine.

- HoldingsSnapshotProvider: per-month NFT holdings from the indexer
- ChainTransferClient: broadcasts a reward payment
- ChainBurnClient: broadcasts the burn of unclaimed rewards

Concrete implementations here cover development and simple deployments;
production chain clients live with the wallet service and only need to
implement the two ABCs.
"""

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

import requests

from .errors import SnapshotUnavailableError
from .models import Holding

logger = logging.getLogger("revshare.clients")

# Snapshot request timeout in seconds
REQUEST_TIMEOUT = 10


# ============================================================================
# HOLDINGS SNAPSHOTS
# ============================================================================

class HoldingsSnapshotProvider(ABC):
    """Source of per-month holder weights."""

    @abstractmethod
    def get_holdings(self, month: str) -> List[Holding]:
        """
        Get the holdings snapshot for a month.

        Args:
            month: YYYY-MM

        Returns:
            List of Holding entries

        Raises:
            SnapshotUnavailableError: indexing for the month is incomplete
        """
        pass


class StaticSnapshotProvider(HoldingsSnapshotProvider):
    """Snapshots supplied up front, keyed by month."""

    def __init__(self, snapshots: Optional[Dict[str, Iterable[Holding]]] = None):
        self._snapshots: Dict[str, List[Holding]] = {}
        for month, holdings in (snapshots or {}).items():
            self.set_holdings(month, holdings)

    def set_holdings(self, month: str, holdings: Iterable[Holding]) -> None:
        self._snapshots[month] = list(holdings)

    def get_holdings(self, month: str) -> List[Holding]:
        if month not in self._snapshots:
            raise SnapshotUnavailableError(f"No snapshot recorded for {month}", month=month)
        return list(self._snapshots[month])


class HttpSnapshotProvider(HoldingsSnapshotProvider):
    """
    Reads snapshots from the holdings indexer over HTTP.

    Expects ``GET {base_url}/snapshots/{month}`` to return:

        {"month": "2025-01", "complete": true,
         "holdings": [{"wallet_address": "...", "weight": 3, "user_handle": "..."}]}
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize HttpSnapshotProvider.

        Args:
            base_url: Indexer base URL
            timeout: Request timeout (seconds)
            session: Optional requests session (connection reuse, auth headers)
        """
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def get_holdings(self, month: str) -> List[Holding]:
        url = f"{self.base_url}/snapshots/{month}"
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning(f"Snapshot request failed for {month}: {e}")
            raise SnapshotUnavailableError(f"Snapshot request failed: {e}", month=month)

        if response.status_code != 200:
            logger.warning(f"Snapshot service returned {response.status_code} for {month}")
            raise SnapshotUnavailableError(
                f"Snapshot service returned HTTP {response.status_code}",
                month=month,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SnapshotUnavailableError(f"Malformed snapshot payload: {e}", month=month)

        if not isinstance(data, dict):
            raise SnapshotUnavailableError(
                f"Snapshot for {month} is malformed: expected an object, got {type(data).__name__}",
                month=month,
            )
        if not data.get("complete", False):
            raise SnapshotUnavailableError(f"Snapshot for {month} is not complete", month=month)

        try:
            holdings = [Holding.from_dict(item) for item in data.get("holdings", [])]
        except (KeyError, TypeError) as e:
            raise SnapshotUnavailableError(f"Malformed snapshot entry: {e}", month=month)

        logger.debug(f"Fetched {len(holdings)} holdings for {month}")
        return holdings


# ============================================================================
# CHAIN CLIENTS
# ============================================================================

class ChainTransferClient(ABC):
    """Broadcasts reward payments."""

    @abstractmethod
    def send(self, wallet_address: str, amount: int) -> str:
        """
        Pay amount to a wallet.

        Returns:
            Transaction hash

        Raises:
            Exception: any broadcast failure
        """
        pass


class ChainBurnClient(ABC):
    """Broadcasts burns."""

    @abstractmethod
    def burn(self, amount: int) -> str:
        """
        Burn amount of the reward token.

        Returns:
            Transaction reference

        Raises:
            Exception: any broadcast failure
        """
        pass


class DryRunChainClient(ChainTransferClient, ChainBurnClient):
    """
    Chain client that broadcasts nothing.

    Returns deterministic fake hashes and records every call, which makes
    it usable both for local runs and as a test double.
    """

    def __init__(self, prefix: str = "dryrun"):
        self.prefix = prefix
        self._lock = threading.Lock()
        self._counter = 0
        self.sends: List[Dict] = []
        self.burns: List[Dict] = []

    def _next_hash(self, *parts) -> str:
        with self._lock:
            self._counter += 1
            seed = ":".join([self.prefix, str(self._counter)] + [str(p) for p in parts])
        return hashlib.sha256(seed.encode()).hexdigest()

    def send(self, wallet_address: str, amount: int) -> str:
        tx_hash = self._next_hash("send", wallet_address, amount)
        with self._lock:
            self.sends.append({'wallet_address': wallet_address, 'amount': amount, 'tx_hash': tx_hash})
        logger.info(f"[dry-run] send {amount} to {wallet_address}: {tx_hash[:16]}")
        return tx_hash

    def burn(self, amount: int) -> str:
        tx_ref = self._next_hash("burn", amount)
        with self._lock:
            self.burns.append({'amount': amount, 'tx_ref': tx_ref})
        logger.info(f"[dry-run] burn {amount}: {tx_ref[:16]}")
        return tx_ref

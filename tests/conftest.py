"""Pytest configuration and fixtures."""

import json
from itertools import count
from typing import Optional
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio

from lighter_tx.api.client import ApiClient
from lighter_tx.config import Settings, SignerConfig
from lighter_tx.signing.remote import RemoteSigner

VENUE_URL = "https://testnet.venue.test"
SIGNER_URL = "http://signer.test"
PRIVATE_KEY = "ab" * 40


class VenueStub:
    """In-memory stand-in for the venue REST API."""

    def __init__(self):
        self.next_nonce = 100
        self.requests: list[httpx.Request] = []
        self.submitted: list[dict] = []
        self.accounts: dict[int, dict] = {}
        self.tx_statuses: dict[str, list[str]] = {}
        # Per-market sendTx failures: market_index -> (status, body)
        self.reject_markets: dict[int, tuple[int, dict]] = {}
        # Canned replies served once each, ahead of the normal route: path -> responses.
        # None lets that request through to the normal route.
        self.replies: dict[str, list[Optional[httpx.Response]]] = {}
        self._hashes = count(1)

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if self.replies.get(path):
            reply = self.replies[path].pop(0)
            if reply is not None:
                return reply

        if path == "/api/v1/nextNonce":
            nonce = self.next_nonce
            self.next_nonce += 1
            return httpx.Response(200, json={"code": 200, "nonce": nonce})

        if path == "/api/v1/sendTx":
            form = dict(parse_qsl(request.content.decode()))
            info = json.loads(form["tx_info"])
            market = info.get("MarketIndex")
            if market in self.reject_markets:
                status, body = self.reject_markets[market]
                return httpx.Response(status, json=body)
            self.submitted.append({"tx_type": int(form["tx_type"]), "tx_info": info})
            return httpx.Response(200, json={"code": 200, "tx_hash": f"0xhash{next(self._hashes)}"})

        if path == "/api/v1/sendTxBatch":
            body = json.loads(request.content)
            hashes = [f"0xbatch{i}" for i, _ in enumerate(body["transactions"])]
            return httpx.Response(200, json={"code": 200, "tx_hash": hashes})

        if path == "/api/v1/account":
            index = int(request.url.params["value"])
            account = self.accounts.get(index)
            return httpx.Response(200, json={"accounts": [account] if account else []})

        if path == "/api/v1/tx":
            tx_hash = request.url.params["value"]
            statuses = self.tx_statuses.get(tx_hash)
            if not statuses:
                return httpx.Response(404, json={"message": "tx not found"})
            status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
            return httpx.Response(200, json={"hash": tx_hash, "status": status})

        return httpx.Response(404, json={"message": f"no route {path}"})


class SignerStub:
    """In-memory stand-in for the remote signing service."""

    def __init__(self):
        self.messages: list = []
        self.healthy = True
        self.replies: dict[str, list[httpx.Response]] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if self.replies.get(path):
            return self.replies[path].pop(0)
        if path == "/health":
            return httpx.Response(200, json={"status": "ok" if self.healthy else "down"})
        body = json.loads(request.content)
        if path == "/sign":
            self.messages.append(body["message"])
            return httpx.Response(200, json={"signature": f"sig{len(self.messages)}"})
        if path == "/pubkey":
            return httpx.Response(200, json={"public_key": "pub-" + body["private_key"][:4]})
        return httpx.Response(404, json={"error": "unknown endpoint"})


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, wait_max_ms=1_000, wait_poll_interval_ms=10)


@pytest.fixture
def signer_config() -> SignerConfig:
    return SignerConfig(
        url=VENUE_URL,
        private_key=PRIVATE_KEY,
        account_index=5,
        api_key_index=3,
        signer_url=SIGNER_URL,
    )


@pytest.fixture
def venue() -> VenueStub:
    return VenueStub()


@pytest.fixture
def signer_service() -> SignerStub:
    return SignerStub()


@pytest_asyncio.fixture
async def api_client(venue: VenueStub):
    client = ApiClient(VENUE_URL, transport=httpx.MockTransport(venue.handler))
    yield client
    await client.close()


@pytest_asyncio.fixture
async def remote_signer(signer_config: SignerConfig, signer_service: SignerStub):
    signer = RemoteSigner(signer_config, transport=httpx.MockTransport(signer_service.handler))
    yield signer
    await signer.close()


def make_config(**overrides) -> SignerConfig:
    values = dict(
        url=VENUE_URL,
        private_key=PRIVATE_KEY,
        account_index=5,
        api_key_index=3,
        signer_url=SIGNER_URL,
    )
    values.update(overrides)
    return SignerConfig(**values)


def position(market_id: int, size: str, side: str, mark_price: Optional[str] = "100") -> dict:
    return {"market_id": market_id, "position": size, "side": side, "mark_price": mark_price}

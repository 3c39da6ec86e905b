"""Tests for signing backends, the factory and configuration."""

import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from lighter_tx import builder
from lighter_tx.config import Settings
from lighter_tx.constants import OrderType, TimeInForce
from lighter_tx.exceptions import (
    ConfigurationError,
    SignerCapabilityError,
    SignerError,
    SignerNotReadyError,
)
from lighter_tx.signing import (
    NativeSigner,
    RemoteSigner,
    SignerCapability,
    SignerType,
    create_signer_backend,
)
from lighter_tx.transactions import CreateOrderParams

from conftest import PRIVATE_KEY, SIGNER_URL, make_config

LIBRARY_PATH = "/opt/lighter/signer-amd64.so"


def order_tx(nonce: int = 7):
    params = CreateOrderParams(
        market_index=1,
        client_order_index=10,
        base_amount=100,
        price=2000,
        is_ask=False,
        order_type=OrderType.LIMIT,
        time_in_force=TimeInForce.GOOD_TILL_TIME,
    )
    return builder.build_create_order(make_config(), params, nonce)


def native_config():
    return make_config(signer_url=None, signer_library_path=LIBRARY_PATH)


def fake_library() -> MagicMock:
    lib = MagicMock()
    lib.CreateClient.return_value = None
    lib.CheckClient.return_value = None
    lib.SignCreateOrder.return_value = SimpleNamespace(str=b'{"Nonce":7,"Sig":"native"}', err=None)
    lib.SignCancelOrder.return_value = SimpleNamespace(str=None, err=b"order not found")
    lib.SignTransfer.return_value = SimpleNamespace(str=b'{"Memo":"x","Sig":"t"}', err=None)
    lib.CreateAuthToken.return_value = SimpleNamespace(str=b"token-123", err=None)
    lib.GenerateAPIKey.return_value = SimpleNamespace(privateKey=b"priv", publicKey=b"pub", err=None)
    return lib


class TestSignerConfig:
    """Tests for backend selection in the configuration."""

    def test_requires_a_backend(self):
        with pytest.raises(ConfigurationError):
            make_config(signer_url=None)

    def test_rejects_two_backends(self):
        with pytest.raises(ConfigurationError):
            make_config(signer_library_path=LIBRARY_PATH)

    def test_chain_id_from_url(self):
        assert make_config().resolved_chain_id == 300
        assert make_config(url="https://mainnet.zklighter.elliot.ai").resolved_chain_id == 304
        assert make_config(chain_id=1).resolved_chain_id == 1

    def test_settings_build_config(self, monkeypatch):
        monkeypatch.setenv("LIGHTER_SIGNER_URL", SIGNER_URL)
        monkeypatch.setenv("LIGHTER_ACCOUNT_INDEX", "12")
        monkeypatch.setenv("LIGHTER_PRIVATE_KEY", PRIVATE_KEY)

        settings = Settings(_env_file=None)
        config = settings.to_signer_config()

        assert config.account_index == 12
        assert config.signer_url == SIGNER_URL
        assert settings.get_safe_dict()["private_key"] == "***"


class TestFactory:
    """Tests for create_signer_backend."""

    def test_remote_from_url(self):
        signer = create_signer_backend(make_config())

        assert isinstance(signer, RemoteSigner)
        assert signer.signer_type is SignerType.REMOTE
        assert not signer.is_ready

    def test_native_from_library_path(self):
        signer = create_signer_backend(native_config())

        assert isinstance(signer, NativeSigner)
        assert signer.name == "native"


class TestRemoteSigner:
    """Tests for the HTTP signing backend."""

    @pytest.mark.asyncio
    async def test_sign_before_initialize(self, remote_signer):
        with pytest.raises(SignerNotReadyError):
            await remote_signer.sign_create_order(order_tx())

    @pytest.mark.asyncio
    async def test_signs_canonical_payload(self, remote_signer, signer_service):
        """Test that the service signs the unsigned payload and Sig is appended."""
        await remote_signer.initialize()
        tx = order_tx()

        signed = await remote_signer.sign_create_order(tx)

        assert signer_service.messages == [tx.unsigned_payload()]
        assert signed.tx_type == 14
        assert signed.info["Sig"] == "sig1"
        assert signed.info["Nonce"] == 7

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, remote_signer):
        await remote_signer.initialize()
        client = remote_signer._client
        await remote_signer.initialize()

        assert remote_signer._client is client
        assert remote_signer.is_ready

    @pytest.mark.asyncio
    async def test_service_error(self, signer_config):
        def handler(request):
            return httpx.Response(500, json={"error": "hsm offline"})

        signer = RemoteSigner(signer_config, transport=httpx.MockTransport(handler))
        await signer.initialize()
        try:
            with pytest.raises(SignerError):
                await signer.sign_create_order(order_tx())
        finally:
            await signer.close()

    @pytest.mark.asyncio
    async def test_non_json_reply_is_signer_error(self, remote_signer, signer_service):
        signer_service.replies["/sign"] = [httpx.Response(200, text="upstream proxy error")]
        await remote_signer.initialize()

        with pytest.raises(SignerError, match="invalid JSON"):
            await remote_signer.sign_create_order(order_tx())

    @pytest.mark.asyncio
    async def test_non_object_reply_is_signer_error(self, remote_signer, signer_service):
        signer_service.replies["/sign"] = [httpx.Response(200, json=["sig"])]
        await remote_signer.initialize()

        with pytest.raises(SignerError, match="unexpected payload"):
            await remote_signer.sign_create_order(order_tx())

    @pytest.mark.asyncio
    async def test_health_check_non_json(self, remote_signer, signer_service):
        signer_service.replies["/health"] = [httpx.Response(200, text="ok")]
        await remote_signer.initialize()

        assert not await remote_signer.health_check()

    @pytest.mark.asyncio
    async def test_auth_token(self, remote_signer, signer_service):
        await remote_signer.initialize()

        token = await remote_signer.create_auth_token(1_700_000_000)

        assert token == "1700000000:5:3:sig1"
        assert signer_service.messages == [{"message": "5:3:1700000000"}]

    @pytest.mark.asyncio
    async def test_auth_token_default_deadline(self, remote_signer):
        await remote_signer.initialize()

        token = await remote_signer.create_auth_token()

        deadline = int(token.split(":")[0])
        assert abs(deadline - (time.time() + 600)) < 5

    @pytest.mark.asyncio
    async def test_health_and_pubkey(self, remote_signer, signer_service):
        assert not await remote_signer.health_check()

        await remote_signer.initialize()
        assert await remote_signer.health_check()
        assert await remote_signer.get_public_key() == "pub-abab"

        signer_service.healthy = False
        assert not await remote_signer.health_check()

    @pytest.mark.asyncio
    async def test_key_generation_unsupported(self, remote_signer):
        assert not remote_signer.supports(SignerCapability.GENERATE_API_KEY)

        with pytest.raises(SignerCapabilityError) as exc_info:
            await remote_signer.generate_api_key()

        assert "not supported with remote signer" in str(exc_info.value)
        assert str(exc_info.value).startswith("unsupported:")


class TestNativeSigner:
    """Tests for the shared-library backend with a fake library."""

    @pytest.mark.asyncio
    async def test_initialize_creates_client_once(self):
        lib = fake_library()
        signer = NativeSigner(native_config(), library=lib)

        await signer.initialize()
        await signer.initialize()

        lib.CreateClient.assert_called_once_with(
            b"https://testnet.venue.test", PRIVATE_KEY.encode(), 300, 3, 5
        )
        assert signer.is_ready
        assert signer.check_client() is None

    @pytest.mark.asyncio
    async def test_create_client_error(self):
        lib = fake_library()
        lib.CreateClient.return_value = b"invalid private key"
        signer = NativeSigner(native_config(), library=lib)

        with pytest.raises(SignerError, match="invalid private key"):
            await signer.initialize()
        assert not signer.is_ready

    @pytest.mark.asyncio
    async def test_sign_create_order_passes_sentinel_expiry(self):
        lib = fake_library()
        signer = NativeSigner(native_config(), library=lib)
        await signer.initialize()

        signed = await signer.sign_create_order(order_tx(nonce=7))

        lib.SignCreateOrder.assert_called_once_with(1, 10, 100, 2000, 0, 0, 1, 0, 0, -1, 7)
        assert signed.tx_type == 14
        assert signed.info == {"Nonce": 7, "Sig": "native"}

    @pytest.mark.asyncio
    async def test_library_error_is_signer_error(self):
        signer = NativeSigner(native_config(), library=fake_library())
        await signer.initialize()

        with pytest.raises(SignerError, match="order not found"):
            await signer.sign_cancel_order(builder.build_cancel_order(make_config(), 1, 2, 3))

    @pytest.mark.asyncio
    async def test_non_json_tx_info_is_signer_error(self):
        lib = fake_library()
        lib.SignCreateOrder.return_value = SimpleNamespace(str=b"not json", err=None)
        signer = NativeSigner(native_config(), library=lib)
        await signer.initialize()

        with pytest.raises(SignerError, match="not valid JSON"):
            await signer.sign_create_order(order_tx())

    @pytest.mark.asyncio
    async def test_transfer_encodes_memo(self):
        lib = fake_library()
        signer = NativeSigner(native_config(), library=lib)
        await signer.initialize()

        await signer.sign_transfer(builder.build_transfer(make_config(), 9, 2, "m" * 32, 4))

        lib.SignTransfer.assert_called_once_with(9, 2_000_000, 0, b"m" * 32, 4)

    @pytest.mark.asyncio
    async def test_unsupported_operations(self):
        signer = NativeSigner(native_config(), library=fake_library())
        await signer.initialize()

        for capability in (
            SignerCapability.WITHDRAW,
            SignerCapability.CREATE_SUB_ACCOUNT,
            SignerCapability.MODIFY_ORDER,
            SignerCapability.CHANGE_PUB_KEY,
        ):
            assert not signer.supports(capability)

        with pytest.raises(SignerCapabilityError, match="sign_withdraw not supported with native signer"):
            await signer.sign_withdraw(builder.build_withdraw(make_config(), 1, 1))

    @pytest.mark.asyncio
    async def test_generate_api_key_without_client(self):
        lib = fake_library()
        signer = NativeSigner(native_config(), library=lib)

        pair = await signer.generate_api_key("seed")

        assert pair.private_key == "priv"
        assert pair.public_key == "pub"
        lib.GenerateAPIKey.assert_called_once_with(b"seed")
        lib.CreateClient.assert_not_called()

    @pytest.mark.asyncio
    async def test_auth_token(self):
        lib = fake_library()
        signer = NativeSigner(native_config(), library=lib)
        await signer.initialize()

        assert await signer.create_auth_token(1_700_000_000) == "token-123"
        lib.CreateAuthToken.assert_called_once_with(1_700_000_000)

    @pytest.mark.asyncio
    async def test_sign_before_initialize(self):
        signer = NativeSigner(native_config(), library=fake_library())

        with pytest.raises(SignerNotReadyError):
            await signer.sign_create_order(order_tx())

"""Signer factory.

Creates the signing backend selected by the client configuration.
"""

import logging

from lighter_tx.config import SignerConfig
from lighter_tx.signing.base import SignerBackend, SignerType

logger = logging.getLogger(__name__)


def get_signer_type(config: SignerConfig) -> SignerType:
    """Determine which backend the configuration selects.

    ``SignerConfig`` guarantees exactly one of ``signer_url`` and
    ``signer_library_path`` is set.
    """
    if config.signer_url:
        return SignerType.REMOTE
    return SignerType.NATIVE


def create_signer_backend(config: SignerConfig) -> SignerBackend:
    """Create an uninitialized signing backend for ``config``.

    Call ``initialize()`` on the result before signing.
    """
    signer_type = get_signer_type(config)
    logger.info(f"Creating {signer_type.value} signer")

    if signer_type == SignerType.REMOTE:
        from lighter_tx.signing.remote import RemoteSigner
        return RemoteSigner(config, timeout=config.timeout)

    from lighter_tx.signing.native import NativeSigner
    return NativeSigner(config)

"""Signing backends.

Backends:
- remote: signing service over HTTP
- native: local shared library loaded with ctypes
"""

from lighter_tx.signing.base import ApiKeyPair, SignerBackend, SignerCapability, SignerType
from lighter_tx.signing.factory import create_signer_backend, get_signer_type
from lighter_tx.signing.native import NativeSigner
from lighter_tx.signing.remote import RemoteSigner

__all__ = [
    "ApiKeyPair",
    "NativeSigner",
    "RemoteSigner",
    "SignerBackend",
    "SignerCapability",
    "SignerType",
    "create_signer_backend",
    "get_signer_type",
]

"""
ampwallet - AMP subaccount wallet for the Green backend on Liquid

Provides BIP32 signing, the login handshake, the unconfidential spend
builder and the WAMP session to the backend.
"""

__version__ = "0.1.0"

from ampwallet.backends import GreenSession, RemoteSession
from ampwallet.wallet.bip32 import AmpSigner, HDKey
from ampwallet.wallet.service import AmpWallet
from ampwallet.wallet.tx_builder import CovenantTxBuilder, SpendRequest

__all__ = [
    "AmpSigner",
    "AmpWallet",
    "CovenantTxBuilder",
    "GreenSession",
    "HDKey",
    "RemoteSession",
    "SpendRequest",
]

"""
ampcore - Protocol primitives for AMP wallets on Liquid

Provides network parameters, hashing, the login message codec and models of
Green backend responses.
"""

__version__ = "0.1.0"

from ampcore.constants import (
    CHALLENGE_PREFIX,
    LOGIN_KEY_INDEX,
    NETWORKS,
    USER_AGENT,
    NetworkParams,
    get_network_params,
)
from ampcore.crypto import (
    CryptoError,
    MalformedSignature,
    MessageTooLong,
    bitcoin_message_hash,
    decode_signature_der,
    encode_signature_der,
    format_challenge_hash,
    gait_path_bytes,
    hash160,
    hash256,
)
from ampcore.models import (
    AddressRecord,
    FundAddressResponse,
    LoginResponse,
    NetworkType,
    SendRawTransactionResponse,
    SpendLimits,
    Subaccount,
    UnspentOutput,
)

__all__ = [
    "AddressRecord",
    "CHALLENGE_PREFIX",
    "CryptoError",
    "FundAddressResponse",
    "LOGIN_KEY_INDEX",
    "LoginResponse",
    "MalformedSignature",
    "MessageTooLong",
    "NETWORKS",
    "NetworkParams",
    "NetworkType",
    "SendRawTransactionResponse",
    "SpendLimits",
    "Subaccount",
    "USER_AGENT",
    "UnspentOutput",
    "bitcoin_message_hash",
    "decode_signature_der",
    "encode_signature_der",
    "format_challenge_hash",
    "gait_path_bytes",
    "get_network_params",
    "hash160",
    "hash256",
]

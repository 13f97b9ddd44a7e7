"""
Tests for ampcore.models and network parameters
"""

import pytest
from pydantic import ValidationError

from ampcore.constants import LIQUID_TESTNET, TESTNET_TPRV, get_network_params
from ampcore.models import (
    AddressRecord,
    LoginResponse,
    NetworkType,
    SendRawTransactionResponse,
    UnspentOutput,
)


def test_network_type_parse():
    assert NetworkType.parse("testnet") == NetworkType.TESTNET
    assert NetworkType.parse("bitcoin") == NetworkType.MAINNET
    assert NetworkType.parse("MAINNET") == NetworkType.MAINNET
    assert NetworkType.parse(NetworkType.REGTEST) == NetworkType.REGTEST

    with pytest.raises(ValueError):
        NetworkType.parse("dogecoin")


def test_network_params_lookup():
    params = get_network_params("testnet")
    assert params is LIQUID_TESTNET
    assert params.xprv_version == TESTNET_TPRV
    assert params.p2pkh_version == 36
    assert get_network_params("regtest").xprv_version == TESTNET_TPRV


class TestUnspentOutput:
    def test_value_string_is_coerced(self):
        utxo = UnspentOutput.model_validate(
            {
                "txhash": "AB" * 32,
                "pt_idx": 1,
                "value": "100000",
                "subaccount": 1,
                "pointer": 1,
                "block_height": 1000,
                "asset_tag": "",
            }
        )
        assert utxo.value == 100000
        assert utxo.txhash == "ab" * 32

    def test_invalid_txhash_rejected(self):
        with pytest.raises(ValidationError):
            UnspentOutput(txhash="zz" * 32, pt_idx=0, value=1)

    def test_confirmations(self):
        utxo = UnspentOutput(txhash="00" * 32, pt_idx=0, value=1, block_height=100)
        assert utxo.confirmations(100) == 1
        assert utxo.confirmations(109) == 10

        unconfirmed = UnspentOutput(txhash="00" * 32, pt_idx=0, value=1)
        assert unconfirmed.confirmations(109) == 0


def test_address_record_ignores_unknown_fields():
    record = AddressRecord.model_validate(
        {"ad": "XYZ", "script": "5221", "pointer": 3, "branch": 1, "extra": True}
    )
    assert record.pointer == 3
    assert not hasattr(record, "extra")


def test_send_raw_transaction_response_defaults():
    response = SendRawTransactionResponse.model_validate({"txhash": "ab" * 32})
    assert response.limits.total == 0
    assert response.limit_decrease == 0


def test_login_response_subaccount_lookup():
    response = LoginResponse.model_validate(
        {
            "block_height": 5,
            "subaccounts": [
                {"name": "AMP", "pointer": 1, "receiving_id": "GA123", "type": "2of2_no_recovery"}
            ],
        }
    )
    sub = response.subaccount(1)
    assert sub is not None
    assert sub.receiving_id == "GA123"
    assert response.subaccount(2) is None

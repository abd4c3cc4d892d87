import pytest

from support import add_sig, make_key, make_psbt, prune, sigs
from vault_hwi.errors import DeviceDidNotSign, InputCountMismatch, ProtocolError
from vault_hwi.psbt import clone_psbt, decode_psbt, encode_psbt, ensure_signed, merge_partial_sigs


def test_merge_adds_device_signatures_and_keeps_metadata():
    original = make_psbt(n_inputs=2)
    add_sig(original, 0, make_key(1))

    response = prune(original)
    add_sig(response, 0, make_key(2))
    add_sig(response, 1, make_key(2))

    merged = merge_partial_sigs(original, response)

    for i in range(2):
        expected = {**sigs(original, i), **sigs(response, i)}
        assert sigs(merged, i) == expected
        assert merged.inputs[i].witness_utxo.serialize() == original.inputs[i].witness_utxo.serialize()
        assert merged.inputs[i].witness_script.data == original.inputs[i].witness_script.data
    assert len(sigs(merged, 0)) == 2
    assert len(sigs(merged, 1)) == 1


def test_merge_does_not_mutate_original():
    original = make_psbt(n_inputs=1)
    before = encode_psbt(original)
    response = add_sig(prune(original), 0, make_key(3))

    merge_partial_sigs(original, response)

    assert encode_psbt(original) == before
    assert sigs(original, 0) == {}


def test_merge_with_empty_response_is_identity():
    original = add_sig(make_psbt(n_inputs=2), 1, make_key(4))
    merged = merge_partial_sigs(original, prune(original))
    assert encode_psbt(merged) == encode_psbt(original)


def test_merge_rejects_input_count_mismatch():
    original = make_psbt(n_inputs=2)
    response = make_psbt(n_inputs=3)
    with pytest.raises(InputCountMismatch) as e:
        merge_partial_sigs(original, response)
    assert isinstance(e.value, ProtocolError)
    assert e.value.data == {"expected_inputs": 2, "received_inputs": 3}


def test_clone_is_independent():
    original = make_psbt(n_inputs=1)
    copy = clone_psbt(original)
    add_sig(copy, 0, make_key(5))
    assert sigs(original, 0) == {}


def test_decode_roundtrip_and_errors():
    psbt = add_sig(make_psbt(n_inputs=1), 0, make_key(6))
    assert encode_psbt(decode_psbt(encode_psbt(psbt))) == encode_psbt(psbt)

    with pytest.raises(ProtocolError):
        decode_psbt("not base64 !!")
    with pytest.raises(ProtocolError):
        decode_psbt("aGVsbG8gd29ybGQ=")  # valid base64, not a PSBT
    with pytest.raises(ProtocolError):
        decode_psbt(None)


def test_ensure_signed():
    request = make_psbt(n_inputs=2)
    signed = add_sig(clone_psbt(request), 1, make_key(7))
    ensure_signed(request, signed)

    with pytest.raises(DeviceDidNotSign):
        ensure_signed(request, clone_psbt(request))

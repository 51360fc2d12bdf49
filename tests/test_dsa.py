from dataclasses import replace

import pytest

from selene.data import KeyPair, Parameters
from selene.dsa import DSAAlgorithmHelper
from selene.exceptions import MalformedInputError, MissingKeyError, UnsupportedOperationError
from selene.primitives import is_probable_prime


def test_parameters_form_a_dsa_group(parameters):
    p, q, g = parameters.p, parameters.q, parameters.g
    assert p.bit_length() == 1024
    assert q.bit_length() == 160
    assert (p - 1) % q == 0
    assert is_probable_prime(p, 40) and is_probable_prime(q, 40)
    assert 1 < g < p and pow(g, q, p) == 1
    assert (parameters.l, parameters.m) == (1024, 160)


def test_unsupported_lengths_are_rejected(random):
    with pytest.raises(MalformedInputError):
        DSAAlgorithmHelper().create_parameters(random, 1024, 256)


def test_keys(key_pair, parameters):
    assert 1 <= key_pair.private_key < parameters.q
    assert key_pair.public_key == pow(parameters.g, key_pair.private_key, parameters.p)


def test_sign_and_verify(random, parameters, key_pair):
    dsa = DSAAlgorithmHelper()
    signature = dsa.sign(random, parameters, key_pair, b"ballot")
    assert dsa.verify(parameters, key_pair, b"ballot", signature)
    assert dsa.verify(parameters, key_pair.public(), b"ballot", signature)
    assert not dsa.verify(parameters, key_pair, b"ballot!", signature)

    other = dsa.create_keys(random, parameters)
    assert not dsa.verify(parameters, other, b"ballot", signature)


def test_sign_needs_private_key(random, parameters, key_pair):
    with pytest.raises(MissingKeyError) as e:
        DSAAlgorithmHelper().sign(random, parameters, key_pair.public(), b"x")
    assert e.value.message == "Missing private key"
    with pytest.raises(MissingKeyError):
        DSAAlgorithmHelper().verify(parameters, KeyPair(), b"x", b"")


def test_encryption_is_refused(random, parameters, key_pair):
    dsa = DSAAlgorithmHelper()
    with pytest.raises(UnsupportedOperationError) as e:
        dsa.encrypt(random, parameters, key_pair, b"x")
    assert e.value.message == "DSA algorithm cannot be used for encryption/decryption"
    with pytest.raises(UnsupportedOperationError):
        dsa.decrypt(parameters, key_pair, b"x")
    with pytest.raises(UnsupportedOperationError):
        dsa.generate_proof(random, parameters, 1, [])


def test_signatures_are_randomized(random, parameters, key_pair):
    dsa = DSAAlgorithmHelper()
    first = dsa.sign(random, parameters, key_pair, b"ballot")
    second = dsa.sign(random, parameters, key_pair, b"ballot")
    assert first != second
    assert dsa.verify(parameters, key_pair, b"ballot", first)
    assert dsa.verify(parameters, key_pair, b"ballot", second)


def test_check_parameters(parameters):
    dsa = DSAAlgorithmHelper()
    assert dsa.check_parameters(parameters) is parameters
    with pytest.raises(MalformedInputError) as e:
        dsa.check_parameters(replace(parameters, g=1))
    assert e.value.message == "DSA parameters do not describe a subgroup of order q"
    with pytest.raises(MalformedInputError) as e:
        dsa.check_parameters(Parameters(p=23, q=11, g=4))
    assert e.value.message == "Unsupported DSA key lengths L=5, N=4"

import pytest
from Crypto.Hash import SHA1, SHA256, SHA384, SHA512

from selene.primitives import (
    bytes_to_int,
    digest_for_length,
    generate_random,
    hash_values,
    int_to_bytes,
    is_probable_prime,
    random_bytes_function,
)


def test_digest_for_length_thresholds():
    assert digest_for_length(160) is SHA1
    assert digest_for_length(161) is SHA256
    assert digest_for_length(256) is SHA256
    assert digest_for_length(384) is SHA384
    assert digest_for_length(3072) is SHA512


def test_int_to_bytes_is_minimal_twos_complement():
    assert int_to_bytes(0) == b"\x00"
    assert int_to_bytes(127) == b"\x7f"
    # high bit set needs a leading zero byte to stay positive
    assert int_to_bytes(128) == b"\x00\x80"
    assert int_to_bytes(255) == b"\x00\xff"
    assert int_to_bytes(256) == b"\x01\x00"
    assert bytes_to_int(int_to_bytes(2**521 - 1)) == 2**521 - 1


def test_generate_random_range(random):
    values = {generate_random(random, 3) for _ in range(200)}
    assert values <= {1, 2}
    with pytest.raises(ValueError):
        generate_random(random, 1)


def test_random_bytes_function_lengths(random):
    randfunc = random_bytes_function(random)
    assert randfunc(0) == b""
    assert len(randfunc(1)) == 1
    assert len(randfunc(33)) == 33


def test_is_probable_prime():
    assert is_probable_prime(2**127 - 1, 64)
    assert not is_probable_prime(2**128 + 1, 64)
    # Carmichael number
    assert not is_probable_prime(561, 64)


def test_hash_values_depends_on_order_and_width():
    a = hash_values(160, 1, 2, 3)
    assert a == hash_values(160, 1, 2, 3)
    assert a != hash_values(160, 3, 2, 1)
    assert a < 2**160
    assert hash_values(256, 1, 2, 3) < 2**256
    assert hash_values(256, 1, 2, 3) != a
    assert a == bytes_to_int(SHA1.new(b"\x01\x02\x03").digest())

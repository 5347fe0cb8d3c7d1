"""
Unit Tests - NKey encoding and signatures

Module: tests.test_nkey
Date: 2025-11-23
Version: 0.2.0

Scenarios:
1. The development seed loads as an account key
2. Keys carry the right role letter
3. Sign / verify, tampered data rejected
4. Corrupted seeds and public keys rejected
"""

import unittest

from uniq_server.core.constants import DEFAULT_SEED
from uniq_server.security.nkey import (
    NKeyPair,
    NKeyError,
    InvalidSeedError,
    InvalidPublicKeyError,
    InvalidSignatureError,
    PREFIX_BYTE_ACCOUNT,
    PREFIX_BYTE_SERVER,
    PREFIX_BYTE_USER,
    crc16,
    decode_public_key,
    is_server_key,
)

from callout_fixtures import generate_keypair


def corrupt(encoded: str, index: int = 10) -> str:
    replacement = "A" if encoded[index] != "A" else "B"
    return encoded[:index] + replacement + encoded[index + 1:]


class TestNKeyEncoding(unittest.TestCase):
    """Seed loading and public key decoding"""

    def test_crc16_xmodem_check_value(self):
        """CRC-16/XMODEM of "123456789" is 0x31C3"""
        self.assertEqual(crc16(b"123456789"), 0x31C3)

    def test_development_seed_is_account_key(self):
        """
        Scenario: Load the development seed
        Given: the default signing seed
        When: it is loaded
        Then: it is an account keypair whose public key starts with A
        """
        keypair = NKeyPair.from_seed(DEFAULT_SEED)

        self.assertTrue(keypair.can_sign)
        self.assertEqual(keypair.prefix, PREFIX_BYTE_ACCOUNT)
        self.assertTrue(keypair.public_key.startswith("A"))
        self.assertEqual(len(keypair.public_key), 56)

    def test_seed_accepts_bytes(self):
        from_str = NKeyPair.from_seed(DEFAULT_SEED)
        from_bytes = NKeyPair.from_seed(DEFAULT_SEED.encode())
        self.assertEqual(from_str.public_key, from_bytes.public_key)

    def test_roles(self):
        self.assertTrue(generate_keypair(PREFIX_BYTE_SERVER).public_key.startswith("N"))
        self.assertTrue(generate_keypair(PREFIX_BYTE_USER).public_key.startswith("U"))
        self.assertTrue(generate_keypair(PREFIX_BYTE_ACCOUNT).public_key.startswith("A"))

    def test_public_key_only(self):
        keypair = generate_keypair(PREFIX_BYTE_SERVER)
        public = NKeyPair.from_public_key(keypair.public_key)

        self.assertEqual(public.public_key, keypair.public_key)
        self.assertEqual(public.prefix, PREFIX_BYTE_SERVER)
        self.assertFalse(public.can_sign)
        prefix, raw = decode_public_key(keypair.public_key)
        self.assertEqual(prefix, PREFIX_BYTE_SERVER)
        self.assertEqual(len(raw), 32)

    def test_corrupted_seed_rejected(self):
        with self.assertRaises(InvalidSeedError):
            NKeyPair.from_seed(corrupt(DEFAULT_SEED))

    def test_garbage_seed_rejected(self):
        with self.assertRaises(InvalidSeedError):
            NKeyPair.from_seed("not-a-seed!")
        with self.assertRaises(InvalidSeedError):
            NKeyPair.from_seed(None)

    def test_public_key_is_not_a_seed(self):
        public_key = NKeyPair.from_seed(DEFAULT_SEED).public_key
        with self.assertRaises(InvalidSeedError):
            NKeyPair.from_seed(public_key)

    def test_corrupted_public_key_rejected(self):
        public_key = generate_keypair(PREFIX_BYTE_USER).public_key
        with self.assertRaises(InvalidPublicKeyError):
            NKeyPair.from_public_key(corrupt(public_key))

    def test_is_server_key(self):
        self.assertTrue(is_server_key(generate_keypair(PREFIX_BYTE_SERVER).public_key))
        self.assertFalse(is_server_key(generate_keypair(PREFIX_BYTE_USER).public_key))
        self.assertFalse(is_server_key(None))


class TestNKeySignatures(unittest.TestCase):
    """Ed25519 signatures"""

    def setUp(self):
        self.keypair = generate_keypair(PREFIX_BYTE_ACCOUNT)

    def test_sign_and_verify(self):
        signature = self.keypair.sign(b"payload")
        self.assertEqual(len(signature), 64)

        verifier = NKeyPair.from_public_key(self.keypair.public_key)
        verifier.verify(b"payload", signature)

    def test_tampered_data_rejected(self):
        signature = self.keypair.sign(b"payload")
        with self.assertRaises(InvalidSignatureError):
            self.keypair.verify(b"payl0ad", signature)

    def test_other_key_rejected(self):
        signature = self.keypair.sign(b"payload")
        other = generate_keypair(PREFIX_BYTE_ACCOUNT)
        with self.assertRaises(InvalidSignatureError):
            other.verify(b"payload", signature)

    def test_public_key_cannot_sign(self):
        public = NKeyPair.from_public_key(self.keypair.public_key)
        with self.assertRaises(NKeyError):
            public.sign(b"payload")


if __name__ == "__main__":
    unittest.main()

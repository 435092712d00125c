"""
Tests for veilpay_core.payload - encrypted ephemeral-key payloads.

Covers:
  - Keystream schedule for both formats
  - Byte payload round trips for several plaintext sizes
  - Ephemeral key round trips, notes and verification flags
  - LEGACY payloads padded out to a fixed on-chain buffer
  - Format detection and explicit-format override
  - Auto-detection round trips, including base64 text that reads as base58
  - Too-short and badly encoded payloads
"""

import base64
import hashlib
import os
import unittest
from unittest import mock

from veilpay_core.curve import shared_secret
from veilpay_core.encoding import base58_encode
from veilpay_core.errors import InvalidEncoding, PayloadTooShort, VerificationMismatch
from veilpay_core.keys import (
    ephemeral_keypair_from_seed,
    generate_ephemeral_keypair,
    meta_keypair_from_seeds,
)
from veilpay_core.payload import (
    NONCE_SIZE,
    DecryptedPayload,
    PayloadFormat,
    decrypt_ephemeral_key,
    decrypt_note,
    decrypt_payload,
    derive_keystream,
    detect_format,
    encrypt_ephemeral_key,
    encrypt_note,
    encrypt_payload,
    xor_keystream,
)

LEGACY = PayloadFormat.LEGACY
EXTENDED = PayloadFormat.EXTENDED

KEYS = meta_keypair_from_seeds(b"\x31" * 32, b"\x32" * 32)
EPH = ephemeral_keypair_from_seed(b"\x33" * 32)
OTHER_EPH = ephemeral_keypair_from_seed(b"\x34" * 32)


class TestKeystream(unittest.TestCase):

    def test_legacy_is_sha256(self):
        shared = b"\x05" * 32
        self.assertEqual(derive_keystream(shared, LEGACY), hashlib.sha256(shared).digest())

    def test_extended_layout(self):
        shared = b"\x05" * 32
        k1 = hashlib.sha256(shared).digest()
        key = derive_keystream(shared, EXTENDED)
        self.assertEqual(len(key), 96)
        self.assertEqual(key[:32], k1)
        self.assertEqual(key[32:64], hashlib.sha256(k1 + b"\x01").digest())
        self.assertEqual(key[64:], hashlib.sha256(k1 + b"\x02").digest())

    def test_xor_self_inverse(self):
        key = os.urandom(32)
        data = os.urandom(100)
        self.assertEqual(xor_keystream(xor_keystream(data, key), key), data)

    def test_xor_repeats_key(self):
        key = b"\x01\x02"
        self.assertEqual(xor_keystream(b"\x00" * 5, key), b"\x01\x02\x01\x02\x01")


class TestBytePayload(unittest.TestCase):

    def _roundtrip(self, plaintext: bytes, fmt: PayloadFormat) -> None:
        enc = encrypt_payload(plaintext, EPH.eph_priv, KEYS.view_pub, fmt)
        self.assertEqual(decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub, fmt), plaintext)

    def test_roundtrip_sizes(self):
        for fmt in PayloadFormat:
            for size in (0, 1, 32, 96, 200):
                with self.subTest(fmt=fmt, size=size):
                    self._roundtrip(os.urandom(size), fmt)

    def test_layout(self):
        plaintext = b"abc" * 10
        enc = encrypt_payload(plaintext, EPH.eph_priv, KEYS.view_pub, EXTENDED)
        raw = base64.b64decode(enc)
        self.assertEqual(len(raw), NONCE_SIZE + len(plaintext))
        shared = shared_secret(EPH.eph_priv, KEYS.view_pub_bytes)
        body = xor_keystream(raw[NONCE_SIZE:], derive_keystream(shared, EXTENDED))
        self.assertEqual(body, plaintext)

    def test_fresh_nonce(self):
        a = encrypt_payload(b"x", EPH.eph_priv, KEYS.view_pub, EXTENDED)
        b = encrypt_payload(b"x", EPH.eph_priv, KEYS.view_pub, EXTENDED)
        self.assertNotEqual(a, b)

    def test_too_short(self):
        enc = base58_encode(b"\x09" * (NONCE_SIZE - 1))
        with self.assertRaises(PayloadTooShort) as ctx:
            decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub, LEGACY)
        self.assertEqual(ctx.exception.length, NONCE_SIZE - 1)
        self.assertEqual(ctx.exception.minimum, NONCE_SIZE)

    def test_bad_base64(self):
        with self.assertRaises(InvalidEncoding):
            decrypt_payload("not base64!!", KEYS.view_priv, EPH.eph_pub, EXTENDED)

    def test_bad_base58(self):
        with self.assertRaises(InvalidEncoding):
            decrypt_payload("0OIl", KEYS.view_priv, EPH.eph_pub, LEGACY)


class TestEphemeralKeyPayload(unittest.TestCase):

    def test_roundtrip_both_formats(self):
        for fmt in PayloadFormat:
            with self.subTest(fmt=fmt):
                enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, fmt=fmt)
                result = decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub, fmt)
                self.assertIsInstance(result, DecryptedPayload)
                self.assertTrue(result.verified)
                self.assertEqual(result.eph_priv, EPH.eph_priv)
                self.assertEqual(result.eph_pub, EPH.eph_pub_bytes)
                self.assertEqual(result.fmt, fmt)
                self.assertEqual(result.note, "")

    def test_legacy_plaintext_is_hex(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, fmt=LEGACY)
        plain = decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub, LEGACY)
        self.assertEqual(plain, EPH.eph_priv.hex().encode("ascii"))

    def test_extended_plaintext_layout(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note="hi", fmt=EXTENDED)
        plain = decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED)
        self.assertEqual(plain[:32], EPH.eph_priv)
        self.assertEqual(plain[32:64], EPH.eph_pub_bytes)
        self.assertEqual(plain[64:66], b"\x02\x00")
        self.assertEqual(plain[66:], b"hi")

    def test_note_unicode(self):
        note = "Gehalt März ✓"
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note=note, fmt=EXTENDED)
        result = decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED)
        self.assertEqual(result.note, note)
        self.assertTrue(result.verified)

    def test_long_note_beyond_keystream(self):
        note = "n" * 500
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note=note, fmt=EXTENDED)
        self.assertEqual(decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED).note, note)

    def test_note_too_long(self):
        with self.assertRaises(ValueError):
            encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note="x" * 70000, fmt=EXTENDED)

    def test_legacy_note_rejected(self):
        with self.assertRaises(ValueError):
            encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note="x", fmt=LEGACY)

    def test_legacy_padded_buffer(self):
        # fixed 128-byte on-chain buffer: ciphertext followed by zero padding
        shared = shared_secret(EPH.eph_priv, KEYS.view_pub_bytes)
        body = xor_keystream(EPH.eph_priv.hex().encode("ascii"), derive_keystream(shared, LEGACY))
        raw = os.urandom(NONCE_SIZE) + body + b"\x00" * (128 - len(body))
        result = decrypt_ephemeral_key(base58_encode(raw), KEYS.view_priv, EPH.eph_pub, LEGACY)
        self.assertTrue(result.verified)
        self.assertEqual(result.eph_priv, EPH.eph_priv)

    def test_wrong_ephemeral_pub_not_verified(self):
        for fmt in PayloadFormat:
            with self.subTest(fmt=fmt):
                enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, fmt=fmt)
                result = decrypt_ephemeral_key(enc, KEYS.view_priv, OTHER_EPH.eph_pub, fmt)
                self.assertFalse(result.verified)
                with self.assertRaises(VerificationMismatch):
                    result.raise_for_mismatch()

    def test_raise_for_mismatch_passes_when_verified(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub)
        result = decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED)
        self.assertIs(result.raise_for_mismatch(), result)

    def test_too_short_for_format(self):
        enc = encrypt_payload(b"\x00" * 10, EPH.eph_priv, KEYS.view_pub, EXTENDED)
        with self.assertRaises(PayloadTooShort) as ctx:
            decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED)
        self.assertEqual(ctx.exception.minimum, NONCE_SIZE + 64)

    def test_repr_hides_ephemeral_priv(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub)
        result = decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED)
        self.assertNotIn(repr(EPH.eph_priv), repr(result))


class TestFormatDetection(unittest.TestCase):

    def test_base64_only_chars(self):
        for ch in "+/=0OIl":
            self.assertEqual(detect_format("abc" + ch + "def"), EXTENDED)

    def test_base58_text(self):
        self.assertEqual(detect_format("3mJr7AoUXx2Wqd"), LEGACY)

    def test_legacy_autodetect(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, fmt=LEGACY)
        result = decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub)
        self.assertEqual(result.fmt, LEGACY)
        self.assertTrue(result.verified)

    def test_extended_with_padding_autodetect(self):
        # 24 + 66 + 1 bytes is not a multiple of 3, so base64 ends in "="
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note="x", fmt=EXTENDED)
        self.assertTrue(enc.endswith("="))
        result = decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub)
        self.assertEqual(result.fmt, EXTENDED)
        self.assertEqual(result.note, "x")

    def test_explicit_format_wins(self):
        enc = encrypt_payload(b"\x00" * 40, EPH.eph_priv, KEYS.view_pub, LEGACY)
        # forcing EXTENDED on base58 text either fails to decode or decrypts
        # differently; it never silently falls back to LEGACY
        try:
            plain = decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED)
        except InvalidEncoding:
            return
        self.assertNotEqual(plain, b"\x00" * 40)


class TestAutoDetectRoundTrip(unittest.TestCase):

    ROUNDS = 300

    def test_byte_payloads_without_format(self):
        for fmt in PayloadFormat:
            for size in (0, 1, 32, 96):
                with self.subTest(fmt=fmt, size=size):
                    for _ in range(self.ROUNDS):
                        plaintext = os.urandom(size)
                        enc = encrypt_payload(plaintext, EPH.eph_priv, KEYS.view_pub, fmt)
                        self.assertEqual(decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub), plaintext)

    def test_extended_text_always_detectable(self):
        for _ in range(self.ROUNDS):
            enc = encrypt_payload(b"", EPH.eph_priv, KEYS.view_pub, EXTENDED)
            self.assertEqual(detect_format(enc), EXTENDED)

    def test_ephemeral_keys_without_format(self):
        for fmt in PayloadFormat:
            with self.subTest(fmt=fmt):
                for _ in range(100):
                    eph = generate_ephemeral_keypair()
                    enc = encrypt_ephemeral_key(eph.eph_priv, KEYS.view_pub, fmt=fmt)
                    result = decrypt_ephemeral_key(enc, KEYS.view_priv, eph.eph_pub)
                    self.assertTrue(result.verified)
                    self.assertEqual(result.fmt, fmt)
                    self.assertEqual(result.eph_priv, eph.eph_priv)

    def test_base64_without_telltale_chars(self):
        # 24 zero bytes encode to "A" * 32, which is also valid base58
        enc = base64.b64encode(b"\x00" * NONCE_SIZE).decode("ascii")
        self.assertEqual(detect_format(enc), LEGACY)
        self.assertEqual(decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub), b"")


class TestMisdetectedExtended(unittest.TestCase):
    """EXTENDED text classified as LEGACY is still opened correctly."""

    def _as_legacy(self):
        return mock.patch("veilpay_core.payload.detect_format", return_value=LEGACY)

    def test_byte_payload_falls_back(self):
        enc = encrypt_payload(b"", EPH.eph_priv, KEYS.view_pub, EXTENDED)
        with self._as_legacy():
            self.assertEqual(decrypt_payload(enc, KEYS.view_priv, EPH.eph_pub), b"")

    def test_ephemeral_key_falls_back(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, fmt=EXTENDED)
        with self._as_legacy():
            result = decrypt_ephemeral_key(enc, KEYS.view_priv, EPH.eph_pub)
        self.assertTrue(result.verified)
        self.assertEqual(result.fmt, EXTENDED)
        self.assertEqual(result.eph_priv, EPH.eph_priv)

    def test_note_falls_back(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note="bonus", fmt=EXTENDED)
        with self._as_legacy():
            self.assertEqual(decrypt_note(enc, KEYS.view_priv, EPH.eph_pub), "bonus")

    def test_undecodable_text_keeps_legacy_error(self):
        with self._as_legacy():
            with self.assertRaises(InvalidEncoding):
                decrypt_ephemeral_key("not base64!!", KEYS.view_priv, EPH.eph_pub)


class TestNotes(unittest.TestCase):

    def test_standalone_note(self):
        enc = encrypt_note("invoice #7", EPH.eph_priv, KEYS.view_pub)
        self.assertEqual(decrypt_note(enc, KEYS.view_priv, EPH.eph_pub), "invoice #7")

    def test_note_from_extended_payload(self):
        enc = encrypt_ephemeral_key(EPH.eph_priv, KEYS.view_pub, note="bonus", fmt=EXTENDED)
        self.assertEqual(decrypt_note(enc, KEYS.view_priv, EPH.eph_pub, EXTENDED), "bonus")


if __name__ == "__main__":
    unittest.main()

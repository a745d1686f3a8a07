"""Tests for clearsigned InRelease verification."""

import pytest

from aptmeta.apt import keys
from aptmeta.apt.keys import NO_SIGNATURE_CHECK
from aptmeta.apt.signature import ClearsignedMessage, verify_inline
from aptmeta.errors import VerificationError, VerificationFailure

RELEASE_TEXT = "Origin: Test\nSuite: stable\nCodename: bookworm\n"

SIGNATURE_BLOCK = (
    b"-----BEGIN PGP SIGNATURE-----\n"
    b"\n"
    b"iQEzBAEBCgAdFiEEZmFrZSBzaWduYXR1cmUgZm9yIHRlc3Rz\n"
    b"=abcd\n"
    b"-----END PGP SIGNATURE-----\n"
)


def envelope(text, headers=b"Hash: SHA512\n", signature=SIGNATURE_BLOCK, prefix=b""):
    return prefix + b"-----BEGIN PGP SIGNED MESSAGE-----\n" + headers + b"\n" + text + signature


class TestClearsignedMessage:
    """Tests for parsing the cleartext signature envelope."""

    def test_parse(self):
        """Test splitting headers, text and signature."""
        message = ClearsignedMessage.parse(envelope(b"Origin: Test\nSuite: stable\n"))

        assert message.hash_algorithms == ("SHA512",)
        assert message.text == b"Origin: Test\nSuite: stable"
        assert message.signature == SIGNATURE_BLOCK

    def test_dash_escaping_removed(self):
        """Test that dash-escaped lines are unescaped."""
        message = ClearsignedMessage.parse(envelope(b"- -not armor\nOrigin: Test\n"))
        assert message.text == b"-not armor\nOrigin: Test"

    def test_leading_whitespace_and_crlf(self):
        """Test leading blank lines and CRLF line endings."""
        data = envelope(b"Origin: Test\n", prefix=b"\n  \n").replace(b"\n", b"\r\n")
        assert ClearsignedMessage.parse(data).text == b"Origin: Test"

    def test_multiple_hash_headers(self):
        """Test that Hash headers accumulate."""
        message = ClearsignedMessage.parse(
            envelope(b"Origin: Test\n", headers=b"Hash: SHA256, SHA512\nHash: SHA1\n")
        )
        assert message.hash_algorithms == ("SHA256", "SHA512", "SHA1")

    @pytest.mark.parametrize(
        "data",
        [
            b"Origin: Test\n",
            b"garbage\n" + envelope(b"Origin: Test\n"),
            envelope(b"Origin: Test\n") + b"trailing data\n",
            envelope(b"-----BEGIN PGP MESSAGE-----\n"),
            envelope(b"Origin: Test\n", signature=b""),
            envelope(b"Origin: Test\n", signature=SIGNATURE_BLOCK.replace(b"-----END PGP SIGNATURE-----\n", b"")),
            envelope(b"Origin: Test\n", headers=b"not a header\n"),
        ],
        ids=[
            "not-clearsigned",
            "leading-garbage",
            "trailing-data",
            "unescaped-dash",
            "no-signature",
            "unterminated-signature",
            "bad-armor-header",
        ],
    )
    def test_malformed(self, data):
        """Test that broken envelopes are reported as malformed."""
        with pytest.raises(VerificationError) as exc_info:
            ClearsignedMessage.parse(data)
        assert exc_info.value.reason == VerificationFailure.MALFORMED_DOCUMENT

    def test_is_clearsigned(self):
        """Test detection of clearsigned documents."""
        assert ClearsignedMessage.is_clearsigned(envelope(b"Origin: Test\n"))
        assert not ClearsignedMessage.is_clearsigned(b"Origin: Test\n")


class TestNoSignatureCheck:
    """Tests for the NO_SIGNATURE_CHECK anchor."""

    def test_plain_document(self):
        """Test that plain documents are accepted unverified."""
        document = verify_inline(RELEASE_TEXT.encode(), NO_SIGNATURE_CHECK)

        assert document.payload == RELEASE_TEXT.encode()
        assert not document.signature.verified

    def test_clearsigned_document_is_unwrapped(self):
        """Test that the envelope is stripped without checking the signature."""
        document = verify_inline(envelope(RELEASE_TEXT.encode()), NO_SIGNATURE_CHECK)

        assert document.payload == RELEASE_TEXT.encode().rstrip(b"\n")
        assert not document.signature.verified

    def test_malformed_envelope_still_rejected(self):
        """Test that a broken envelope is rejected even without verification."""
        data = envelope(RELEASE_TEXT.encode()) + b"junk\n"
        with pytest.raises(VerificationError):
            verify_inline(data, NO_SIGNATURE_CHECK)

    def test_unknown_anchor(self):
        """Test that unsupported anchors raise TypeError."""
        with pytest.raises(TypeError):
            verify_inline(RELEASE_TEXT.encode(), "not an anchor")


class TestVerifyWithKey:
    """Tests for verification against a real GnuPG key."""

    def test_valid_signature(self, signer):
        """Test that a correctly signed document yields its payload."""
        signed = signer.clearsign(RELEASE_TEXT)
        anchor = keys.from_bytes(signer.public_armored)

        document = verify_inline(signed, anchor)

        assert document.signature.verified
        assert document.signature.fingerprint == signer.fingerprint
        assert document.payload == RELEASE_TEXT.encode().rstrip(b"\n")

    def test_binary_key(self, signer):
        """Test verification with a binary key."""
        signed = signer.clearsign(RELEASE_TEXT)
        document = verify_inline(signed, keys.from_bytes(signer.public_binary))
        assert document.signature.verified

    def test_tampered_text(self, signer):
        """Test that modified text fails verification."""
        signed = signer.clearsign(RELEASE_TEXT).replace(b"Suite: stable", b"Suite: evil!")
        anchor = keys.from_bytes(signer.public_armored)

        with pytest.raises(VerificationError) as exc_info:
            verify_inline(signed, anchor)
        assert exc_info.value.reason == VerificationFailure.SIGNATURE_MISMATCH

    def test_flipped_signature_byte(self, signer):
        """Test that corrupting the signature fails verification."""
        lines = signer.clearsign(RELEASE_TEXT).split(b"\n")
        end = lines.index(b"-----END PGP SIGNATURE-----")
        line = bytearray(lines[end - 3])
        line[10] = ord("A") if line[10] != ord("A") else ord("B")
        lines[end - 3] = bytes(line)
        anchor = keys.from_bytes(signer.public_armored)

        with pytest.raises(VerificationError) as exc_info:
            verify_inline(b"\n".join(lines), anchor)
        assert exc_info.value.reason == VerificationFailure.SIGNATURE_MISMATCH

        # The same document is accepted unchanged without a signature check
        document = verify_inline(b"\n".join(lines), NO_SIGNATURE_CHECK)
        assert document.payload == RELEASE_TEXT.encode().rstrip(b"\n")

    def test_unknown_key(self, signer, other_signer):
        """Test that a signature by another key is reported as unknown key."""
        signed = other_signer.clearsign(RELEASE_TEXT)
        anchor = keys.from_bytes(signer.public_armored)

        with pytest.raises(VerificationError) as exc_info:
            verify_inline(signed, anchor)
        assert exc_info.value.reason == VerificationFailure.UNKNOWN_KEY

    def test_plain_document_rejected(self, signer):
        """Test that an unsigned document is malformed when a key is required."""
        anchor = keys.from_bytes(signer.public_armored)

        with pytest.raises(VerificationError) as exc_info:
            verify_inline(RELEASE_TEXT.encode(), anchor)
        assert exc_info.value.reason == VerificationFailure.MALFORMED_DOCUMENT

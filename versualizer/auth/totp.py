"""
Time-based one-time codes (RFC 6238 over RFC 4226 HMAC-SHA1).

The web-player token endpoint wants a TOTP derived from a published,
obfuscated shared secret and the server's clock. decode_secret() undoes
the obfuscation; generate_totp() produces the code.
"""

import hashlib
import hmac
import struct


TOTP_PERIOD_S = 30
TOTP_DIGITS = 6


def generate_totp(secret: bytes, server_time_s: int) -> str:
    """
    Generate a 6-digit TOTP code.

    Args:
        secret: HMAC key.
        server_time_s: Unix time in seconds, taken from the server.

    Returns:
        Exactly six ASCII digits, zero-padded. Stable within one
        30-second step.
    """
    counter = server_time_s // TOTP_PERIOD_S
    digest = hmac.new(secret, struct.pack(">Q", counter), hashlib.sha1).digest()

    # Dynamic truncation: low nibble of the last byte picks a 31-bit word
    offset = digest[-1] & 0x0F
    binary = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF

    return f"{binary % 10 ** TOTP_DIGITS:0{TOTP_DIGITS}d}"


def decode_secret(obfuscated: list[int]) -> bytes:
    """
    Decode an obfuscated secret from the secret dictionary.

    Byte i is XORed with (i % 33) + 9 and the resulting integers are
    concatenated as decimal strings; the UTF-8 bytes of that string are
    the HMAC key. For example [65, 66] XORs to 72 and 72, giving
    b"7272".
    """
    return "".join(str(byte ^ ((i % 33) + 9)) for i, byte in enumerate(obfuscated)).encode("utf-8")

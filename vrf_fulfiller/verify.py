"""drand beacon verification (BLS12-381) for the supported drand schemes."""

import hashlib

from py_ecc.bls import G2Basic
from py_ecc.bls.g2_primitives import pubkey_to_G1, signature_to_G2
from py_ecc.optimized_bls12_381 import G2, pairing

from .abi import SCHEME_CHAINED, SCHEME_G1, SCHEME_G1_RFC9380, SCHEME_UNCHAINED
from .errors import VerificationError

DST_G1 = b"BLS_SIG_BLS12381G1_XMD:SHA-256_SSWU_RO_NUL_"
DST_G2 = b"BLS_SIG_BLS12381G2_XMD:SHA-256_SSWU_RO_NUL_"

SUPPORTED_SCHEMES = (SCHEME_CHAINED, SCHEME_UNCHAINED, SCHEME_G1, SCHEME_G1_RFC9380)


def round_message(round: int, scheme: str, previous_signature: bytes | None = None) -> bytes:
    """Digest signed by the drand group for `round`.

    Chained: sha256(previous_signature || round_be64). Unchained: sha256(round_be64).
    """
    round_bytes = round.to_bytes(8, "big")
    if scheme == SCHEME_CHAINED:
        if not previous_signature:
            raise VerificationError(f"round {round}: chained scheme requires previous_signature")
        return hashlib.sha256(previous_signature + round_bytes).digest()
    if scheme in (SCHEME_UNCHAINED, SCHEME_G1, SCHEME_G1_RFC9380):
        return hashlib.sha256(round_bytes).digest()
    raise VerificationError(f"unsupported drand scheme '{scheme}'")


def check_randomness(randomness: bytes, signature: bytes) -> None:
    """drand randomness is always sha256(signature)."""
    if hashlib.sha256(signature).digest() != randomness:
        raise VerificationError("randomness does not match sha256(signature)")


def _verify_g2_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    # public key on G1 (48 bytes), signature on G2 (96 bytes)
    return G2Basic.Verify(public_key, message, signature)


def _verify_g1_signature(public_key: bytes, message: bytes, signature: bytes,
                         dst: bytes) -> bool:
    # public key on G2 (96 bytes), signature on G1 (48 bytes)
    if len(public_key) != 96 or len(signature) != 48:
        return False
    from py_ecc.bls.hash_to_curve import hash_to_G1

    pk_point = signature_to_G2(public_key)
    sig_point = pubkey_to_G1(signature)
    msg_point = hash_to_G1(message, dst, hashlib.sha256)
    return pairing(G2, sig_point) == pairing(pk_point, msg_point)


def verify_signature(round: int, signature: bytes, public_key: bytes, scheme: str,
                     previous_signature: bytes | None = None) -> None:
    """Raise VerificationError unless `signature` is the group's signature for `round`."""
    message = round_message(round, scheme, previous_signature)
    try:
        if scheme in (SCHEME_CHAINED, SCHEME_UNCHAINED):
            ok = _verify_g2_signature(public_key, message, signature)
        elif scheme == SCHEME_G1:
            # fastnet signs on G1 but with the G2 domain separation tag
            ok = _verify_g1_signature(public_key, message, signature, DST_G2)
        else:
            ok = _verify_g1_signature(public_key, message, signature, DST_G1)
    except (ValueError, AssertionError) as e:
        raise VerificationError(f"round {round}: malformed point: {e}") from e
    if not ok:
        raise VerificationError(f"round {round}: invalid beacon signature")


def verify_beacon(beacon, public_key_hex: str, scheme: str) -> None:
    """Full check of a BeaconValue: randomness binding, then BLS signature."""
    check_randomness(beacon.randomness, beacon.signature)
    verify_signature(
        beacon.round, beacon.signature, bytes.fromhex(public_key_hex), scheme,
        beacon.previous_signature,
    )

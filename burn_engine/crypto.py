"""
Hashing, operator signatures and program-derived addresses.
"""
import hashlib

from Crypto.Hash import keccak
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from nacl.bindings import crypto_core_ed25519_is_valid_point

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16
OPERATOR_CURVE = ec.SECP256R1()
SIGNATURE_ALGORITHM = ec.ECDSA(hashes.SHA256())


def generate_hash(data: bytes) -> bytes:
    """Keccak-256 digest, used for instruction ids."""
    return keccak.new(digest_bits=256, data=data).digest()


# ==============================================================================
# OPERATOR KEYS
# ==============================================================================

def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """New operator key pair on P-256."""
    private_key = ec.generate_private_key(OPERATOR_CURVE)
    return private_key, private_key.public_key()


def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    pem = public_key.public_bytes(serialization.Encoding.PEM,
                                  serialization.PublicFormat.SubjectPublicKeyInfo)
    return pem.decode('utf-8')


def deserialize_public_key(pem_data: str) -> ec.EllipticCurvePublicKey:
    return serialization.load_pem_public_key(pem_data.encode('utf-8'))


def public_key_to_address(public_key_pem: str) -> bytes:
    """
    Operator address: sha256 over the DER encoding of the public key.

    The same key always maps to the same 32 bytes whatever PEM line
    wrapping the caller used.
    """
    spki = deserialize_public_key(public_key_pem).public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    return hashlib.sha256(spki).digest()


def sign(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    return private_key.sign(data, SIGNATURE_ALGORITHM)


def verify_signature(public_key_pem: str, signature: bytes, data: bytes) -> bool:
    """False for a bad signature or an unparseable key."""
    try:
        deserialize_public_key(public_key_pem).verify(signature, data, SIGNATURE_ALGORITHM)
    except (InvalidSignature, ValueError):
        return False
    return True


# ==============================================================================
# PROGRAM-DERIVED ADDRESSES
# ==============================================================================

def is_on_curve(address: bytes) -> bool:
    """True if the 32 bytes decode to a valid ed25519 point."""
    return bool(crypto_core_ed25519_is_valid_point(address))


def create_program_address(seeds: list[bytes], program_id: bytes) -> bytes:
    """
    Hash seeds and program id into an address.

    Raises:
        ValueError: If a seed is too long or the result lies on the curve
            (an address with a private key cannot be program-owned).
    """
    if len(seeds) > MAX_SEEDS:
        raise ValueError(f"Too many seeds: {len(seeds)}")
    h = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise ValueError(f"Seed longer than {MAX_SEED_LENGTH} bytes")
        h.update(seed)
    h.update(program_id)
    h.update(PDA_MARKER)
    address = h.digest()
    if is_on_curve(address):
        raise ValueError("Derived address is on the ed25519 curve")
    return address


def find_program_address(seeds: list[bytes], program_id: bytes) -> tuple[bytes, int]:
    """
    Find the first off-curve address for the seeds, trying bumps 255 down to 0.

    Returns:
        (address, bump)
    """
    if any(len(seed) > MAX_SEED_LENGTH for seed in seeds):
        raise ValueError(f"Seed longer than {MAX_SEED_LENGTH} bytes")
    for bump in range(255, -1, -1):
        try:
            return create_program_address(list(seeds) + [bytes([bump])], program_id), bump
        except ValueError:
            continue
    raise ValueError("Unable to find a viable program address bump")

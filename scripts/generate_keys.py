#!/usr/bin/env python3
"""Write the RSA key pair used to sign and verify access tokens.

Paths come from the service settings (JWT_PRIVATE_KEY_PATH / JWT_PUBLIC_KEY_PATH).
"""
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from taskscope.config import get_settings


def write_key_pair(private_path: Path, public_path: Path, key_size: int = 2048) -> None:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    private_path.parent.mkdir(parents=True, exist_ok=True)
    private_path.write_bytes(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))

    public_path.parent.mkdir(parents=True, exist_ok=True)
    public_path.write_bytes(private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))


if __name__ == "__main__":
    settings = get_settings()
    write_key_pair(Path(settings.jwt_private_key_path), Path(settings.jwt_public_key_path))
    print(f"RSA keys written to {settings.jwt_private_key_path} and {settings.jwt_public_key_path}")

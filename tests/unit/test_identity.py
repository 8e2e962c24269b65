"""
Tests unitarios para la resolucion de identidad.
"""
import hashlib
import uuid

from dirsync.application.services.fingerprint import fingerprint
from dirsync.application.services.identity import (
    UUID_GENERATION_SALT,
    get_device_name,
    get_device_os,
    identity_from_fingerprint,
    is_valid_identity,
    resolve_identity,
    resolve_record,
)


EXISTING = "0b7f1c2e-4d5a-4e6f-8a9b-1c2d3e4f5a6b"


class TestResolveIdentity:
    """Tests para resolve_identity()."""

    def test_reuses_valid_id(self):
        assert resolve_identity({"id": EXISTING, "serialNumber": "SN1"}) == uuid.UUID(EXISTING)

    def test_reuses_uuid_field_when_id_is_invalid(self):
        other = str(uuid.uuid4())

        assert resolve_identity({"id": "abc", "uuid": other}) == uuid.UUID(other)

    def test_malformed_identity_falls_through_to_derivation(self):
        """Un id que no es UUID no es error: se deriva del fingerprint."""
        record = {"id": "not-a-uuid", "serialNumber": "SN123"}

        assert resolve_identity(record) == identity_from_fingerprint(fingerprint(record))

    def test_derived_identity_is_stable(self):
        """Mismo fingerprint -> misma identidad, aunque cambien otros campos."""
        a = resolve_identity({"serialNumber": "SN123", "osVersion": "10"})
        b = resolve_identity({"serialNumber": "SN123", "osVersion": "11"})

        assert a == b

    def test_different_devices_get_different_identities(self):
        assert resolve_identity({"serialNumber": "SN1"}) != resolve_identity({"serialNumber": "SN2"})


class TestIdentityFromFingerprint:
    """Tests para la derivacion del UUID."""

    def test_sets_version_and_variant_bits(self):
        derived = identity_from_fingerprint("abc")

        assert derived.version == 4
        assert derived.variant == uuid.RFC_4122

    def test_uses_salted_sha256_prefix(self):
        digest = bytearray(hashlib.sha256(b"abc" + UUID_GENERATION_SALT).digest()[:16])
        digest[6] = (digest[6] & 0x0F) | 0x40
        digest[8] = (digest[8] & 0x3F) | 0x80

        assert identity_from_fingerprint("abc") == uuid.UUID(bytes=bytes(digest))


class TestResolveRecord:
    """Tests para resolve_record()."""

    def test_carries_fingerprint_and_hash(self):
        record = {"id": EXISTING, "serialNumber": "SN1"}

        resolved = resolve_record(record)

        assert resolved.identity_str == EXISTING
        assert resolved.reused_identity is True
        assert resolved.fingerprint == fingerprint(record)
        assert len(resolved.change_hash) == 64
        assert resolved.data is record

    def test_identity_str_is_canonical_lowercase(self):
        resolved = resolve_record({"id": EXISTING.upper()})

        assert resolved.identity_str == EXISTING

    def test_is_valid_identity(self):
        assert is_valid_identity(EXISTING)
        assert not is_valid_identity("")
        assert not is_valid_identity(123)


class TestDeviceHelpers:
    """Tests para get_device_name / get_device_os."""

    def test_device_name_fallbacks(self):
        assert get_device_name({"deviceName": "PC-1", "displayName": "x"}) == "PC-1"
        assert get_device_name({"displayName": "Grupo"}) == "Grupo"
        assert get_device_name({}) == "unknown"

    def test_device_os_fallbacks(self):
        assert get_device_os({"operatingSystem": "iOS"}) == "iOS"
        assert get_device_os({"osVersion": "14.2"}) == "14.2"
        assert get_device_os({}) is None

"""Unit tests for contract profiles and ABI loading."""

import json

import pytest

from certchain.services.blockchain.abi import (
    CERTIFICATE_ABI,
    CERTIFICATE_PROFILE,
    SIMPLE_CERTIFICATE_ABI,
    SIMPLE_CERTIFICATE_PROFILE,
    get_profile,
    load_abi,
    output_field_names,
)
from certchain.utils.exceptions import ContractMismatchError


class TestProfiles:
    """Tests for the two contract families."""

    def test_profiles_complete(self):
        """Both built-in profiles name only entries present in their ABI."""
        CERTIFICATE_PROFILE.ensure_complete()
        SIMPLE_CERTIFICATE_PROFILE.ensure_complete()

    def test_get_profile_by_name(self):
        assert get_profile("certificate") is CERTIFICATE_PROFILE
        assert get_profile("simple") is SIMPLE_CERTIFICATE_PROFILE

    def test_unknown_profile(self):
        with pytest.raises(ContractMismatchError):
            get_profile("erc20")

    def test_mint_args_with_metadata(self):
        args = CERTIFICATE_PROFILE.mint_args("0xR", "Ada", "Math", "Uni", "ipfs://x")
        assert args == ("0xR", "Ada", "Math", "Uni", "ipfs://x")

    def test_mint_args_without_metadata(self):
        """The simple contract takes no metadata URI."""
        args = SIMPLE_CERTIFICATE_PROFILE.mint_args("0xR", "Ada", "Math", "Uni", "ipfs://x")
        assert args == ("0xR", "Ada", "Math", "Uni")

    def test_record_field_names(self):
        assert output_field_names(CERTIFICATE_ABI, "getCertificate")[:2] == ["issuer", "recipient"]
        assert "isRevoked" in output_field_names(SIMPLE_CERTIFICATE_ABI, "getCertificate")


class TestLoadAbi:
    """Tests for external ABI files."""

    def test_plain_array(self, tmp_path):
        path = tmp_path / "abi.json"
        path.write_text(json.dumps(CERTIFICATE_ABI))
        assert load_abi(str(path)) == CERTIFICATE_ABI

    def test_hardhat_artifact(self, tmp_path):
        path = tmp_path / "Certificate.json"
        path.write_text(json.dumps({"contractName": "Certificate", "abi": SIMPLE_CERTIFICATE_ABI}))
        profile = get_profile("simple", str(path))
        assert profile.abi == SIMPLE_CERTIFICATE_ABI

    def test_missing_file(self, tmp_path):
        with pytest.raises(ContractMismatchError, match="not found"):
            load_abi(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "abi.json"
        path.write_text("{not json")
        with pytest.raises(ContractMismatchError):
            load_abi(str(path))

    def test_abi_missing_profile_entries(self, tmp_path):
        """An ABI of the other family is rejected at load time."""
        path = tmp_path / "abi.json"
        path.write_text(json.dumps(SIMPLE_CERTIFICATE_ABI))
        with pytest.raises(ContractMismatchError, match="mintCertificate"):
            get_profile("certificate", str(path))

"""
Tests for settings loading and validation.
"""

import pytest

from polymarket_trader.config import DATA_API_URL, DEFAULT_CHAIN_ID, Settings, create_env_template

from conftest import TEST_ADDRESS, TEST_PRIVATE_KEY, make_settings

FUNDER = "0x" + "ab" * 20


class TestAddresses:
    """Tests for signer and owner addresses."""

    def test_signer_from_private_key(self):
        assert make_settings().signer_address == TEST_ADDRESS

    def test_owner_is_signer_without_funder(self):
        assert make_settings().owner_address == TEST_ADDRESS

    def test_owner_is_funder_when_set(self):
        assert make_settings(funder_address=FUNDER).owner_address == FUNDER

    def test_read_only_mode(self):
        settings = make_settings(private_key=None)
        assert not settings.can_sign
        assert settings.signer_address is None
        assert settings.owner_address is None


class TestSignatureType:
    def test_eoa_by_default(self):
        assert make_settings().effective_signature_type == 0

    def test_proxy_when_funder_set(self):
        assert make_settings(funder_address=FUNDER).effective_signature_type == 2

    def test_explicit_setting_wins(self):
        assert make_settings(funder_address=FUNDER, signature_type=1).effective_signature_type == 1


class TestValidate:
    """Tests for Settings.validate()."""

    def test_valid(self):
        is_valid, errors = make_settings().validate()
        assert is_valid
        assert errors == []

    def test_bad_private_key(self):
        is_valid, errors = make_settings(private_key="0xnothex").validate()
        assert not is_valid
        assert any("PRIVATE_KEY" in e for e in errors)

    def test_proxy_signature_needs_funder(self):
        is_valid, errors = make_settings(signature_type=1).validate()
        assert not is_valid
        assert any("FUNDER_ADDRESS" in e for e in errors)

    def test_bad_fee_floor(self):
        is_valid, errors = make_settings(min_priority_fee_gwei=0).validate()
        assert not is_valid

    def test_summary_hides_key(self):
        summary = make_settings().summary()
        assert summary["private_key"] == "set"
        assert TEST_PRIVATE_KEY not in str(summary)

    def test_summary_with_invalid_key(self):
        assert make_settings(private_key="0xnothex").summary()["signer_address"] == "invalid private key"


class TestLoading:
    """Tests for environment and .env loading."""

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("PRIVATE_KEY", TEST_PRIVATE_KEY)
        monkeypatch.setenv("FUNDER_ADDRESS", FUNDER)
        monkeypatch.setenv("SIGNATURE_TYPE", "1")
        monkeypatch.setenv("MIN_PRIORITY_FEE_GWEI", "45")
        monkeypatch.delenv("CHAIN_ID", raising=False)

        settings = Settings()

        assert settings.private_key == TEST_PRIVATE_KEY
        assert settings.funder_address == FUNDER
        assert settings.signature_type == 1
        assert settings.min_priority_fee_gwei == 45
        assert settings.chain_id == DEFAULT_CHAIN_ID

    def test_empty_values_are_unset(self, monkeypatch):
        monkeypatch.setenv("PRIVATE_KEY", "")
        monkeypatch.setenv("SIGNATURE_TYPE", "")

        settings = Settings()

        assert settings.private_key is None
        assert settings.signature_type is None

    def test_from_file(self, tmp_path):
        env_file = tmp_path / "test.env"
        env_file.write_text(
            f"PRIVATE_KEY={TEST_PRIVATE_KEY}\n"
            "POLYGON_RPC_URL=http://node:8545\n"
            "APPROVAL_GAS_LIMIT=150000\n"
        )

        settings = Settings.from_file(str(env_file))

        assert settings.signer_address == TEST_ADDRESS
        assert settings.rpc_url == "http://node:8545"
        assert settings.approval_gas_limit == 150000
        assert settings.funder_address is None

    def test_data_url(self, monkeypatch, tmp_path):
        monkeypatch.delenv("DATA_API_URL", raising=False)
        assert Settings().data_url == DATA_API_URL

        env_file = tmp_path / "test.env"
        env_file.write_text("DATA_API_URL=http://data.local\n")
        assert Settings.from_file(str(env_file)).data_url == "http://data.local"
        assert Settings().summary()["data_url"] == DATA_API_URL

    def test_env_template(self, tmp_path):
        path = create_env_template(str(tmp_path / ".env.template"))

        text = path.read_text()
        assert "PRIVATE_KEY=" in text
        assert "MIN_PRIORITY_FEE_GWEI=30" in text

    @pytest.mark.parametrize(
        "name", ["PRIVATE_KEY", "FUNDER_ADDRESS", "POLYGON_RPC_URL", "CLOB_HOST", "GAMMA_API_URL", "DATA_API_URL"]
    )
    def test_template_lists_settings(self, tmp_path, name):
        assert name in create_env_template(str(tmp_path / "t.env")).read_text()

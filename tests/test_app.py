"""Tests for settings, audit logging, the component factory and the CLI."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from vozfinancas import cli
from vozfinancas.audit import AuditLogger, create_correlation_id
from vozfinancas.config import get_settings, validate_all_settings
from vozfinancas.config.settings import AppSettings, AudioSettings
from vozfinancas.models.audit import AuditEventBuilder, AuditEventType
from vozfinancas.orchestrator import create_app_components
from vozfinancas.services.storage import Database, InMemoryKeyValueStore, SQLiteAuditStorage


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Fresh settings per test, with no remote backend and no API key."""
    monkeypatch.setenv("REMOTE_SYNC_ENABLED", "false")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_audio_defaults(self):
        audio = AudioSettings()
        assert audio.input_sample_rate == 16000
        assert audio.output_sample_rate == 24000
        assert audio.silence_threshold == 15
        assert audio.silence_timeout_seconds == 3

    def test_fft_size_must_be_power_of_two(self, monkeypatch):
        monkeypatch.setenv("AUDIO_FFT_SIZE", "300")
        with pytest.raises(ValidationError):
            AudioSettings()

    def test_unknown_timezone_rejected(self, monkeypatch):
        monkeypatch.setenv("TIMEZONE", "Mars/Olympus")
        with pytest.raises(ValidationError):
            AppSettings()

    def test_missing_api_key_is_reported(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)  # no .env here
        results = validate_all_settings()
        assert results["gemini"] is False
        assert "gemini_error" in results
        assert results["audio"] is True


class TestAuditLogger:
    """Tests for audit persistence."""

    def test_correlation_id_is_attached(self):
        database = Database("sqlite://")
        database.init_db()
        storage = SQLiteAuditStorage(database)
        session_id = create_correlation_id()
        logger = AuditLogger(storage, correlation_id=session_id)

        assert logger.log(AuditEventBuilder.session_opened())
        logger.log(AuditEventBuilder.silence_timeout(3))

        trail = storage.get_events_by_correlation_id(session_id)
        assert [e.event_type for e in trail] == [
            AuditEventType.SESSION_OPENED,
            AuditEventType.SILENCE_TIMEOUT,
        ]

    def test_storage_failure_is_not_raised(self):
        class BrokenStorage:
            def append_event(self, event):
                raise OSError("disk full")

        logger = AuditLogger(BrokenStorage())
        assert logger.log(AuditEventBuilder.expense_deleted(1)) is False


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_in_memory_components(self):
        components = create_app_components(use_storage=False)

        assert components.replicator is None
        assert components.gate.needs_setup
        assert components.ledger.expenses == []

    def test_shared_store_for_gate_and_ledger(self):
        kv = InMemoryKeyValueStore()
        components = create_app_components(kv=kv)
        components.gate.setup("1234")
        components.ledger.add(Decimal("5"), "pão", "Alimentação")

        assert kv.get_item("vozfinancas_password") == "1234"
        assert len(kv.get_item("vozfinancas_expenses")) == 1

    def test_corrupt_data_file_falls_back_to_memory(self, tmp_path, monkeypatch):
        """Test that an unreadable file is left untouched and the app still starts."""
        data = tmp_path / "data.json"
        data.write_text("not json", encoding="utf-8")
        monkeypatch.setenv("STORAGE_LOCAL_PATH", str(data))
        get_settings.cache_clear()

        components = create_app_components()
        components.ledger.add(Decimal("1"), "x", "y")

        assert data.read_text(encoding="utf-8") == "not json"
        assert len(components.ledger.expenses) == 1


class TestCli:
    """Tests for the list and summary commands."""

    @pytest.fixture
    def components(self, monkeypatch):
        components = create_app_components(use_storage=False)
        monkeypatch.setattr(cli, "create_app_components", lambda: components)
        monkeypatch.setattr(cli, "configure_logging", lambda debug=False: None)
        return components

    def test_list_empty(self, components, capsys):
        assert cli.main(["list"]) == 0
        assert "Nenhum gasto registrado." in capsys.readouterr().out

    def test_summary(self, components, capsys):
        components.ledger.add(Decimal("25"), "almoço", "Alimentação")

        assert cli.main(["summary"]) == 0

        out = capsys.readouterr().out
        assert "Hoje: R$ 25,00" in out
        assert "Alimentação" in out

    def test_listen_without_api_key(self, components, capsys, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert cli.main(["listen"]) == 2
        assert "Configuração inválida" in capsys.readouterr().err

    def test_parser_rejects_bad_date(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["list", "--date", "ontem"])

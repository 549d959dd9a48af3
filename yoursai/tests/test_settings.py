import pytest
from pydantic import SecretStr, ValidationError

from yoursai.config.settings import Settings
from yoursai.src.core.errors import SecretResolutionError
from yoursai.src.core.secrets import SettingsSecretResolver


def test_defaults():
    s = Settings()
    assert s.MAX_MESSAGE_LENGTH == 3000
    assert s.RAG_MIN_MESSAGE_LENGTH == 30
    assert s.SEARCH_RESULTS_LIMIT == 3
    assert s.CONTEXT_EXCHANGES == 5
    assert s.MAX_CHATS_PER_SESSION == 30
    assert s.MAX_TOKENS_PER_CHUNK == 500
    assert s.COMPLETION_MAX_ATTEMPTS - 1 == len(s.COMPLETION_RETRY_DELAYS)
    assert s.LANCEDB_TABLE_NAME == "aiknowledge"


@pytest.mark.parametrize(
    "overrides",
    [
        {"COMPLETION_MAX_ATTEMPTS": 3, "COMPLETION_RETRY_DELAYS": [1.0]},
        {"COMPLETION_MAX_ATTEMPTS": 3, "COMPLETION_RETRY_DELAYS": [5.0, 2.0]},
        {"COMPLETION_MAX_ATTEMPTS": 2, "COMPLETION_RETRY_DELAYS": [-1.0]},
        {"EMBEDDING_DIMENSION": 0},
        {"MAX_TOKENS_PER_CHUNK": 1},
        {"DB_MAX_OPEN_CONNS": 2, "DB_MAX_IDLE_CONNS": 3},
    ],
)
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_single_attempt_needs_no_delays():
    assert Settings(COMPLETION_MAX_ATTEMPTS=1, COMPLETION_RETRY_DELAYS=[]).COMPLETION_RETRY_DELAYS == []


def test_secret_resolver_unwraps_secret_str():
    s = Settings(GOOGLE_API_KEY=SecretStr("abc"))
    assert SettingsSecretResolver(s).get_secret("GOOGLE_API_KEY") == "abc"


@pytest.mark.parametrize("name", ["NO_SUCH_SECRET", "GOOGLE_API_KEY"])
def test_secret_resolver_rejects_missing_or_blank(name):
    s = Settings(GOOGLE_API_KEY=SecretStr("  "))
    with pytest.raises(SecretResolutionError):
        SettingsSecretResolver(s).get_secret(name)

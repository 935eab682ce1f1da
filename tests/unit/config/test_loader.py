from src.config.loader import get_bool_env, get_int_env, get_str_env


def test_get_str_env(monkeypatch):
    monkeypatch.setenv("AUTH_COOKIE_NAME", "  sid  ")
    assert get_str_env("AUTH_COOKIE_NAME") == "sid"
    monkeypatch.delenv("AUTH_COOKIE_NAME")
    assert get_str_env("AUTH_COOKIE_NAME", "fallback") == "fallback"


def test_get_bool_env(monkeypatch):
    for value in ("1", "true", "YES", "on"):
        monkeypatch.setenv("FLAG", value)
        assert get_bool_env("FLAG") is True
    monkeypatch.setenv("FLAG", "off")
    assert get_bool_env("FLAG", True) is False
    monkeypatch.delenv("FLAG")
    assert get_bool_env("FLAG", True) is True


def test_get_int_env_falls_back_on_garbage(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    assert get_int_env("PORT", 5000) == 8080
    monkeypatch.setenv("PORT", "eighty")
    assert get_int_env("PORT", 5000) == 5000

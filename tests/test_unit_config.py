import pytest

from async_request.config import _env_bool, _parse_api_keys


def test_parse_api_keys():
    assert _parse_api_keys(" a:administrator, b:subscriber ,") == {"a": "administrator", "b": "subscriber"}
    assert _parse_api_keys("") == {}


@pytest.mark.parametrize("raw", ["keyonly", ":role", "key:"])
def test_parse_api_keys_rejects_malformed(raw):
    with pytest.raises(ValueError):
        _parse_api_keys(raw)


def test_env_bool(monkeypatch):
    monkeypatch.setenv("ASYNC_REQUEST_FLAG", "Yes")
    assert _env_bool("ASYNC_REQUEST_FLAG", False) is True
    monkeypatch.setenv("ASYNC_REQUEST_FLAG", "0")
    assert _env_bool("ASYNC_REQUEST_FLAG", True) is False
    monkeypatch.setenv("ASYNC_REQUEST_FLAG", " ")
    assert _env_bool("ASYNC_REQUEST_FLAG", True) is True

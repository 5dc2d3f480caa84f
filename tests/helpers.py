def assert_ok(r, code=200):
    assert r.status_code == code, (r.status_code, r.get_data(as_text=True))
    data = r.get_json()
    assert data.get("ok") is True, data
    return data["data"]


def assert_err(r, code=None):
    if code is not None:
        assert r.status_code == code, (r.status_code, r.get_data(as_text=True))
    data = r.get_json()
    assert data.get("ok") is False, data
    return data.get("error")
